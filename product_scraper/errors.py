from __future__ import annotations


class ScraperError(Exception):
    """Base class for errors raised by the scraper package."""


class AcquisitionBlocked(ScraperError):
    """The site answered with an interstitial, challenge or truncated page.

    Fatal for the URL being fetched, never for the whole job."""


class ExtractionSkip(ScraperError):
    """A content block lacks a required field and must be dropped."""


class ConfigurationMissing(ScraperError):
    """A required setting (e.g. the relay access key) is absent."""


class NavigationTimeout(ScraperError):
    """A navigation did not finish in time; content may still be usable."""


class OrchestratorBusy(ScraperError):
    """A run was requested while another job is still running."""


class JobNotFound(ScraperError, KeyError):
    def __init__(self, job_id: int) -> None:
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"Job {self.job_id} not found"
