import logging
from typing import Optional

import requests

from substitution_server.config import get_settings
from substitution_server.dto.models import Schoolday
from substitution_server.errors import TransportError

logger = logging.getLogger(__name__)


class SubstitutionPDFGetter:
    """Downloads the substitution PDF published for a school day."""

    def __init__(self, session: Optional[requests.Session] = None):
        settings = get_settings()
        self._session = session or requests.Session()
        self._url_template = settings.SOURCE_URL_TEMPLATE
        self._authorization = settings.SOURCE_AUTHORIZATION
        self._timeout = settings.FETCH_TIMEOUT

    def url_for(self, day: Schoolday) -> str:
        return self._url_template.format(day=day.german_name)

    def get_weekday_pdf(self, day: Schoolday) -> bytes:
        """
        Returns the body of the response. Does not check that it is a valid
        PDF, that is left to the extraction.
        """
        url = self.url_for(day)
        headers = {"Authorization": self._authorization} if self._authorization else {}

        logger.debug(f"{day}: GET {url}")
        try:
            response = self._session.get(url, headers=headers, timeout=(self._timeout, self._timeout))
            response.raise_for_status()
        except requests.RequestException as exc:
            raise TransportError(f"{day}: could not fetch {url}: {exc}") from exc

        return response.content

    def close(self) -> None:
        self._session.close()
