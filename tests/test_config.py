"""Tests for ScraperConfig."""

import unittest

from product_scraper.config import ScraperConfig


class TestFromEnv(unittest.TestCase):
    """Verify parsing of environment settings."""

    def test_defaults(self):
        config = ScraperConfig.from_env({})
        self.assertEqual(config.backend, "relay")
        self.assertEqual(config.relay_api_key, "")
        self.assertEqual(config.product_limit, 0)
        self.assertEqual(config.min_content_length, 8000)
        self.assertTrue(config.headless)
        self.assertEqual(config.captcha_wait, 0.0)
        self.assertEqual(config.output_sheet, "Products")

    def test_values_read(self):
        config = ScraperConfig.from_env({
            "SCRAPER_BACKEND": " Browser ",
            "SCRAPER_API_KEY": "secret",
            "AMAZON_AFFILIATE_TAG": "mytag-20",
            "PRODUCT_LIMIT": "20",
            "DETAIL_LIMIT": "5",
            "HEADLESS": "false",
            "CAPTCHA_WAIT": "45",
            "OUTPUT_SHEET": "Deals",
        })
        self.assertEqual(config.backend, "browser")
        self.assertEqual(config.relay_api_key, "secret")
        self.assertEqual(config.affiliate_tag, "mytag-20")
        self.assertEqual(config.product_limit, 20)
        self.assertEqual(config.detail_limit, 5)
        self.assertFalse(config.headless)
        self.assertEqual(config.captcha_wait, 45.0)
        self.assertEqual(config.output_sheet, "Deals")

    def test_bad_integer_raises(self):
        with self.assertRaises(ValueError) as ctx:
            ScraperConfig.from_env({"PRODUCT_LIMIT": "lots"})
        self.assertIn("PRODUCT_LIMIT", str(ctx.exception))


class TestDelayWindow(unittest.TestCase):
    """Verify the pacing window per backend."""

    def test_backend_defaults(self):
        self.assertEqual(ScraperConfig(backend="relay").delay_window(), (8.0, 10.0))
        self.assertEqual(ScraperConfig(backend="browser").delay_window(), (1.0, 3.0))

    def test_explicit_window(self):
        config = ScraperConfig.from_env({"SCRAPER_MIN_DELAY": "2", "SCRAPER_MAX_DELAY": "4"})
        self.assertEqual(config.delay_window(), (2.0, 4.0))

    def test_inverted_window_rejected(self):
        with self.assertRaises(ValueError):
            ScraperConfig(min_delay=5.0, max_delay=1.0).delay_window()


if __name__ == "__main__":
    unittest.main()
