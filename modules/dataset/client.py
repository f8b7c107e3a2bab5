"""
JSON-over-HTTP client for the gesture dataset backend.

Every call either returns a validated model or raises DatasetBackendError;
callers decide whether that is fatal (CLI admin commands) or degrades to a
local fallback (export, startup with an empty store).
"""

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Iterable, Optional

from pydantic import TypeAdapter, ValidationError

from core.errors import DatasetBackendError
from modules.dataset.schemas import (
    ConflictReport,
    Dataset,
    DatasetDocument,
    DatasetStats,
    MergeRequest,
    MergeResult,
    find_malformed_label,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3000"

_DATASET_ADAPTER = TypeAdapter(Dataset)


class DatasetClient:
    """Thin client for the dataset backend endpoints."""

    def __init__(self, config: dict = None):
        config = config or {}
        self._base_url = config.get("base_url", DEFAULT_BASE_URL).rstrip("/")
        self._timeout = config.get("timeout_s", 5.0)

    @property
    def base_url(self) -> str:
        return self._base_url

    # =========================================================================
    # Endpoints
    # =========================================================================

    def fetch(self) -> Dataset:
        data = self._request("GET", "/fetch")
        dataset = self._validate(_DATASET_ADAPTER.validate_python, data, "/fetch")
        bad = find_malformed_label(dataset)
        if bad is not None:
            raise DatasetBackendError(f'Unexpected response from /fetch: invalid data for "{bad}"')
        return dataset

    def save(self, dataset: Dataset):
        self._request("POST", "/add", {"dataset": dataset})
        logger.info("Saved %d gestures to backend", len(dataset))

    def check_conflicts(self, dataset: Dataset) -> ConflictReport:
        data = self._request("POST", "/check-conflicts", {"dataset": dataset})
        return self._validate(ConflictReport.model_validate, data, "/check-conflicts")

    def merge(self, dataset: Dataset, replacements: Iterable[str] = (),
              rejections: Iterable[str] = ()) -> MergeResult:
        body = MergeRequest(dataset=dataset, replacements=list(replacements),
                            rejections=list(rejections))
        data = self._request("POST", "/merge-dataset", body.model_dump(by_alias=True))
        return self._validate(MergeResult.model_validate, data or {}, "/merge-dataset")

    def stats(self) -> DatasetStats:
        data = self._request("GET", "/stats")
        return self._validate(DatasetStats.model_validate, data, "/stats")

    def delete_gesture(self, label: str):
        self._request("POST", "/delete-gesture", {"label": label})
        logger.info("Deleted gesture '%s' from backend", label)

    def clear(self):
        self._request("POST", "/clear-database")
        logger.info("Backend dataset cleared")

    def share(self) -> DatasetDocument:
        data = self._request("GET", "/share")
        return self._validate(DatasetDocument.model_validate, data, "/share")

    # =========================================================================
    # Transport
    # =========================================================================

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        url = self._base_url + path
        body = None
        headers = {"Accept": "application/json"}
        if payload is not None:
            body = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"

        request = urllib.request.Request(url, data=body, headers=headers, method=method)
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError as e:
            raise DatasetBackendError(f"{method} {path} failed: HTTP {e.code}") from e
        except (urllib.error.URLError, OSError) as e:
            raise DatasetBackendError(f"Dataset backend unreachable at {self._base_url}: {e}") from e

        if not raw:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise DatasetBackendError(f"{method} {path} returned invalid JSON") from e

    @staticmethod
    def _validate(validator, data, path: str):
        try:
            return validator(data)
        except ValidationError as e:
            raise DatasetBackendError(
                f"Unexpected response from {path}: {e.error_count()} validation error(s)"
            ) from e
