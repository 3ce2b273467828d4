"""
HTTP client for a model prediction endpoint.
"""

import json
from dataclasses import dataclass
from typing import Any

import pandas as pd
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from tabdeploy.deploy.errors import EndpointError
from tabdeploy.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class ModelEndpoint:
    """
    Client for a running model API.

    ``url`` may be the API root or its ``/predict`` route. GET requests
    (ping, metadata) are retried on transient errors; predictions are not.
    """

    url: str
    timeout: float = 30.0
    max_retries: int = 3
    backoff_factor: float = 0.5

    def __post_init__(self) -> None:
        base = self.url.rstrip("/")
        if base.endswith("/predict"):
            base = base[: -len("/predict")]
        self.base_url = base

    @property
    def predict_url(self) -> str:
        return f"{self.base_url}/predict"

    def _session(self) -> requests.Session:
        s = requests.Session()
        retries = Retry(
            total=self.max_retries,
            backoff_factor=self.backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retries)
        s.mount("https://", adapter)
        s.mount("http://", adapter)
        return s

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            with self._session() as s:
                resp = s.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            msg = f"Could not reach {url}: {e}"
            raise EndpointError(msg) from e

        if not resp.ok:
            try:
                message = resp.json().get("error", resp.text)
            except (ValueError, AttributeError):
                message = resp.text or resp.reason
            raise EndpointError(message, status_code=resp.status_code)

        try:
            return resp.json()
        except ValueError as e:
            msg = f"Endpoint returned invalid JSON: {resp.text[:200]}"
            raise EndpointError(msg, status_code=resp.status_code) from e

    def predict(self, new_data: pd.DataFrame) -> pd.DataFrame:
        """
        Post rows to the endpoint and return its predictions.

        Args:
            new_data: Predictor rows (extra columns are ignored by the server).

        Returns:
            Frame of predictions, one row per input row.

        Raises:
            EndpointError: On connection failures or error responses.
        """
        records = json.loads(new_data.to_json(orient="records", date_format="iso"))
        log.debug("Posting predictions request", url=self.predict_url, n_rows=len(records))
        payload = self._request("POST", self.predict_url, json=records)
        return pd.DataFrame(payload)

    def ping(self) -> dict[str, Any]:
        """Liveness check."""
        return self._request("GET", f"{self.base_url}/ping")

    def metadata(self) -> dict[str, Any]:
        """Metadata of the served model."""
        return self._request("GET", f"{self.base_url}/metadata")
