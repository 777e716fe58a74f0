"""Tests for the Context Analyzer."""

from agf_kernel.context.analyzer import DEFAULT_PROFILES, ContextAnalyzer, PostureProfile


class TestContextAnalyzer:
    def setup_method(self):
        self.analyzer = ContextAnalyzer()

    def test_fintech_bundle(self):
        bundle = self.analyzer.analyze({"project_type": "fintech"})

        assert bundle.profile == "fintech"
        assert bundle.expectation("security", "encryption") == "AES-256"
        assert "Injection" in bundle.expectation("security", "owasp")
        assert bundle.lookup("performance.latency_p95_ms") == 200

    def test_unmatched_context_yields_empty_bundle(self):
        bundle = self.analyzer.analyze({"project_type": "game_studio"})
        assert bundle.profile is None
        assert bundle.is_empty

    def test_empty_context(self):
        assert self.analyzer.analyze({}).is_empty

    def test_deterministic(self):
        context = {"project_type": "healthcare", "region": "eu"}
        assert self.analyzer.analyze(context) == self.analyzer.analyze(context)

    def test_bundle_is_a_copy_of_the_table(self):
        bundle = self.analyzer.analyze({"project_type": "fintech"})
        bundle.domains["performance"]["latency_p95_ms"] = 1

        again = self.analyzer.analyze({"project_type": "fintech"})
        assert again.lookup("performance.latency_p95_ms") == 200
        assert DEFAULT_PROFILES[0].domains["performance"]["latency_p95_ms"] == 200

    def test_custom_profile_takes_precedence(self):
        analyzer = ContextAnalyzer(profiles=[
            PostureProfile(
                name="eu_fintech",
                signature={"project_type": "fintech", "region": ["eu", "uk"]},
                domains={"security": {"data_residency": "eu"}},
            ),
        ])

        eu = analyzer.analyze({"project_type": "fintech", "region": "uk"})
        assert eu.profile == "eu_fintech"
        assert eu.lookup("security.data_residency") == "eu"

        us = analyzer.analyze({"project_type": "fintech", "region": "us"})
        assert us.profile == "fintech"

    def test_profiles_listing(self):
        names = [p.name for p in self.analyzer.profiles]
        assert names == ["fintech", "healthcare", "public_sector", "ecommerce"]
