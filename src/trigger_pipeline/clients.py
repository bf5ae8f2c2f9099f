# src/trigger_pipeline/clients.py

import logging
import os

import httpx

from . import config
from .retry import NonRetryableError

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """A transient failure talking to an external API. Safe to retry."""


class ApiRequestError(NonRetryableError):
    """The API rejected the request (4xx) or answered with something unusable."""


class ApiClient:
    """
    Thin wrapper around httpx.Client that maps failures onto the retry
    taxonomy: 4xx responses are non-retryable, 5xx responses and transport
    errors are retryable.
    """

    def __init__(self, base_url, timeout=config.API_TIMEOUT_S, transport=None):
        self.base_url = base_url
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    @staticmethod
    def _check(response):
        status = response.status_code
        if 400 <= status < 500:
            raise ApiRequestError(f"{response.request.method} {response.request.url} -> {status}")
        if status >= 500:
            raise ApiError(f"{response.request.method} {response.request.url} -> {status}")
        return response

    def request(self, method, url, **kwargs):
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise ApiError(f"{method} {url} failed: {e}") from e
        return self._check(response)

    def request_json(self, method, url, **kwargs):
        response = self.request(method, url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise ApiRequestError(f"{method} {url} returned invalid JSON: {e}") from e


class FileRetrievalClient(ApiClient):
    """Looks up the files recorded around a trigger and downloads the CAN segment."""

    def __init__(self, base_url=config.TRIGGER_API_BASE_URL, path=config.TRIGGER_DOWNLOAD_PATH,
                 timeout=config.API_TIMEOUT_S, transport=None):
        super().__init__(base_url, timeout=timeout, transport=transport)
        self.path = path

    def find_can_url(self, vin, timestamp):
        body = self.request_json('POST', self.path, json={"vin": vin, "timestamp": timestamp})
        data = body.get("data") or {}
        for file_info in data.get("file_info") or []:
            if file_info.get("file_type") == "can" and file_info.get("file_url"):
                return file_info["file_url"]
        raise ApiRequestError(f"No CAN file available for {vin} at {timestamp}")

    def download_segment(self, vin, timestamp, dest_path):
        """Downloads the CAN segment for (vin, timestamp) to 'dest_path' and returns the path."""
        url = self.find_can_url(vin, timestamp)
        os.makedirs(os.path.dirname(dest_path) or '.', exist_ok=True)
        try:
            with self._client.stream('GET', url) as response:
                self._check(response)
                with open(dest_path, 'wb') as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
        except httpx.TransportError as e:
            raise ApiError(f"Download of '{url}' failed: {e}") from e
        logger.debug(f"Downloaded CAN segment for {vin}@{timestamp} to '{dest_path}'")
        return dest_path


class TriggerApiClient(ApiClient):
    def __init__(self, base_url=config.TRIGGER_API_BASE_URL, path=config.TRIGGER_FROM_PATH,
                 timeout=config.API_TIMEOUT_S, transport=None):
        super().__init__(base_url, timeout=timeout, transport=transport)
        self.path = path

    def fetch_triggers(self, use_type, trigger_ids):
        body = self.request_json('POST', self.path, json={
            "useType": use_type,
            "triggerIdList": list(trigger_ids),
        })
        rows = body.get("data") or []
        if not isinstance(rows, list):
            raise ApiRequestError(f"Expected a list of triggers, got {type(rows).__name__}")
        return rows


class AlertClient:
    """Posts text alerts to a chat webhook. Without a URL alerts are only logged."""

    def __init__(self, webhook_url=config.ALERT_WEBHOOK_URL, timeout=config.API_TIMEOUT_S, transport=None):
        self.webhook_url = webhook_url
        self._api = ApiClient("", timeout=timeout, transport=transport) if webhook_url else None

    def send(self, text):
        logger.warning(f"ALERT: {text}")
        if self._api is None:
            return
        self._api.request('POST', self.webhook_url, json={
            "msg_type": "text",
            "content": {"text": text},
        })

    def close(self):
        if self._api is not None:
            self._api.close()
