"""Tests for the SessionFactory class."""

import unittest

from product_scraper.backends import RelayBackend
from product_scraper.config import ScraperConfig
from product_scraper.errors import ConfigurationMissing
from product_scraper.factory import SessionFactory
from product_scraper.navigator import BrowserBackend


class TestSessionFactory(unittest.TestCase):
    """Verify that the factory picks the configured backend."""

    def test_creates_relay_session(self):
        """backend 'relay' should produce a session over a RelayBackend."""
        factory = SessionFactory(ScraperConfig(backend="relay", relay_api_key="k"))
        session = factory.create_session()
        self.assertIsInstance(session.backend, RelayBackend)

    def test_creates_browser_session(self):
        """backend 'browser' should produce a BrowserBackend without launching anything."""
        factory = SessionFactory(ScraperConfig(backend="browser"))
        session = factory.create_session()
        self.assertIsInstance(session.backend, BrowserBackend)

    def test_relay_without_key_raises(self):
        factory = SessionFactory(ScraperConfig(backend="relay"))
        with self.assertRaises(ConfigurationMissing):
            factory.create_session()

    def test_unknown_backend_raises_error(self):
        """An unrecognized backend name should raise ValueError."""
        factory = SessionFactory(ScraperConfig(relay_api_key="k"))
        with self.assertRaises(ValueError) as ctx:
            factory.create_backend(factory.create_policy(), name="carrier-pigeon")
        self.assertIn("carrier-pigeon", str(ctx.exception))

    def test_policy_uses_backend_window(self):
        self.assertEqual(SessionFactory(ScraperConfig(backend="relay")).create_policy().window, (8.0, 10.0))
        self.assertEqual(SessionFactory(ScraperConfig(backend="browser")).create_policy().window, (1.0, 3.0))

    def test_affiliate_tag_override(self):
        factory = SessionFactory(ScraperConfig(relay_api_key="k", affiliate_tag="default-20"))
        self.assertEqual(factory.create_session().extractor.affiliate_tag, "default-20")
        self.assertEqual(factory.create_session(affiliate_tag="other-20").extractor.affiliate_tag, "other-20")


if __name__ == "__main__":
    unittest.main()
