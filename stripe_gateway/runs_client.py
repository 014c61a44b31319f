"""HTTP client for runs-service (execution and cost tracking)."""
from typing import Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)


class RunsServiceError(Exception):
    pass


class RunsClient:
    def __init__(self, base_url: str, api_key: str, timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self._client = httpx.Client(
            base_url=base_url,
            headers={"Content-Type": "application/json", "X-API-Key": api_key or ""},
            timeout=timeout,
            transport=transport,
        )

    def _request(self, method: str, path: str, body: Optional[dict] = None) -> dict:
        try:
            response = self._client.request(method, path, json=body)
        except httpx.HTTPError as exc:
            raise RunsServiceError(f"runs-service {method} {path} unreachable: {exc}") from exc

        if response.is_error:
            raise RunsServiceError(
                f"runs-service {method} {path} failed: {response.status_code} - {response.text}"
            )
        return response.json()

    def create_run(self, org_id: str, app_id: str, service_name: str, task_name: str,
                   parent_run_id: Optional[str] = None, user_id: Optional[str] = None,
                   brand_id: Optional[str] = None, campaign_id: Optional[str] = None) -> dict:
        body = {
            "clerkOrgId": org_id,
            "appId": app_id,
            "serviceName": service_name,
            "taskName": task_name,
        }
        optional = {
            "parentRunId": parent_run_id,
            "clerkUserId": user_id,
            "brandId": brand_id,
            "campaignId": campaign_id,
        }
        body.update({k: v for k, v in optional.items() if v is not None})
        return self._request("POST", "/v1/runs", body)

    def update_run(self, run_id: str, status: str, error: Optional[str] = None) -> dict:
        body = {"status": status}
        if error is not None:
            body["error"] = error
        return self._request("PATCH", f"/v1/runs/{run_id}", body)

    def add_costs(self, run_id: str, items) -> dict:
        return self._request("POST", f"/v1/runs/{run_id}/costs", {"items": items})

    def close(self) -> None:
        self._client.close()


def report_best_effort(fn, *args, **kwargs) -> None:
    """Run a reporting call whose failure must never reach the caller."""
    try:
        fn(*args, **kwargs)
    except Exception:
        logger.warning("run_report_failed", call=getattr(fn, "__name__", repr(fn)), exc_info=True)
