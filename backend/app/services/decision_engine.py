"""
Decision engine client.

The pipeline only depends on the DecisionEngine interface; the production
implementation evaluates DMN decisions through the Camunda 8 REST API.

Camunda endpoints used
----------------------
  POST /v2/decision-definitions/evaluation
       request:  {decisionDefinitionId, variables, tenantId?}
       response: {output, decisionDefinitionId, decisionDefinitionName,
                  decisionDefinitionKey, decisionRequirementsId, tenantId,
                  failedDecisionDefinitionId?, failureMessage?}
  GET  /v2/topology                (connectivity check only)

Authentication is OAuth2 client credentials against CAMUNDA_OAUTH_URL when
ZEEBE_CLIENT_ID / ZEEBE_CLIENT_SECRET are set; a local self-managed cluster
without auth works with neither set.

Failed calls are never retried here.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Optional

import httpx

from app.config import get_settings
from app.models.evaluation import DecisionResult

logger = logging.getLogger(__name__)

_EVALUATE_PATH = "/v2/decision-definitions/evaluation"
_TOPOLOGY_PATH = "/v2/topology"

# Refresh the bearer token this many seconds before it expires
_TOKEN_EXPIRY_MARGIN = 30


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class RemoteEvaluationError(Exception):
    """Raised when the decision engine cannot be reached or refuses an evaluation."""
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.detail = detail

    def to_detail(self) -> Optional[dict]:
        """Structured detail for the failure envelope, or None when there is nothing to add."""
        detail = dict(self.detail or {})
        if self.status_code is not None:
            detail["status_code"] = self.status_code
        return detail or None


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

class DecisionEngine(ABC):
    """Anything that can evaluate a named DMN decision against input variables."""

    @abstractmethod
    def evaluate_decision(
        self,
        decision_id: str,
        decision_requirements_id: str,
        variables: dict,
    ) -> DecisionResult:
        """
        Evaluate one decision.

        Raises:
            RemoteEvaluationError: transport failure, timeout, or engine-side error.
        """

    def check_connection(self) -> dict:
        """Return a short status dict, raising RemoteEvaluationError when unreachable."""
        return {}


# ---------------------------------------------------------------------------
# Camunda 8 REST implementation
# ---------------------------------------------------------------------------

def _json_object(response: httpx.Response) -> Optional[dict]:
    """Decode a JSON object body (e.g. an RFC 7807 problem), or None."""
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _as_str(value) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


class CamundaDecisionEngine(DecisionEngine):
    """
    DecisionEngine backed by the Camunda 8 REST API.

    Pass an existing httpx.Client to share connection pools or to inject a
    MockTransport in tests.
    """

    def __init__(
        self,
        base_url: str,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        oauth_url: Optional[str] = None,
        audience: Optional[str] = None,
        tenant_id: Optional[str] = None,
        timeout: float = 30.0,
        http_client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.oauth_url = oauth_url
        self.audience = audience
        self.tenant_id = tenant_id
        self._http = http_client or httpx.Client(timeout=timeout)

        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    # -- auth ---------------------------------------------------------------

    @property
    def uses_oauth(self) -> bool:
        return bool(self.client_id and self.client_secret and self.oauth_url)

    def _fetch_token(self) -> tuple[str, float]:
        try:
            response = self._http.post(
                self.oauth_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "audience": self.audience or "",
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RemoteEvaluationError(
                "Camunda OAuth token request was rejected",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteEvaluationError(f"Camunda OAuth token request failed: {exc}") from exc

        body = _json_object(response) or {}
        token = body.get("access_token")
        if not token:
            raise RemoteEvaluationError("Camunda OAuth response did not include an access_token")
        try:
            expires_in = float(body.get("expires_in") or 300)
        except (TypeError, ValueError) as exc:
            raise RemoteEvaluationError("Camunda OAuth response has an invalid expires_in") from exc
        return token, time.monotonic() + expires_in - _TOKEN_EXPIRY_MARGIN

    def _auth_headers(self) -> dict:
        if not self.uses_oauth:
            return {}
        with self._token_lock:
            if self._token is None or time.monotonic() >= self._token_expires_at:
                logger.debug("Requesting Camunda OAuth token from %s", self.oauth_url)
                self._token, self._token_expires_at = self._fetch_token()
            return {"Authorization": f"Bearer {self._token}"}

    # -- requests -----------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self._http.request(
                method, url, headers=self._auth_headers(), **kwargs
            )
        except httpx.TimeoutException as exc:
            raise RemoteEvaluationError(f"Decision engine timed out: {url}") from exc
        except httpx.HTTPError as exc:
            raise RemoteEvaluationError(f"Decision engine unreachable: {exc}") from exc

        if response.is_error:
            problem = _json_object(response)
            message = (problem or {}).get("detail") or (
                f"Decision engine returned HTTP {response.status_code}"
            )
            raise RemoteEvaluationError(
                message, status_code=response.status_code, detail=problem
            )
        return response

    def evaluate_decision(
        self,
        decision_id: str,
        decision_requirements_id: str,
        variables: dict,
    ) -> DecisionResult:
        # The REST API addresses a decision by its definition id alone; the
        # requirements id is checked against the one the engine reports back.
        payload = {"decisionDefinitionId": decision_id, "variables": variables}
        if self.tenant_id:
            payload["tenantId"] = self.tenant_id

        response = self._request("POST", _EVALUATE_PATH, json=payload)
        body = _json_object(response)
        if body is None:
            raise RemoteEvaluationError(
                "Decision engine returned a non-JSON response",
                status_code=response.status_code,
            )

        if body.get("failureMessage"):
            raise RemoteEvaluationError(
                body["failureMessage"],
                detail={"failed_decision_id": body.get("failedDecisionDefinitionId")},
            )

        reported_requirements_id = _as_str(body.get("decisionRequirementsId"))
        if reported_requirements_id and reported_requirements_id != decision_requirements_id:
            logger.warning(
                "Decision %s belongs to requirements %s, expected %s",
                decision_id,
                reported_requirements_id,
                decision_requirements_id,
            )

        return DecisionResult(
            decision_output=body.get("output"),
            decision_id=_as_str(body.get("decisionDefinitionId")),
            decision_name=_as_str(body.get("decisionDefinitionName")),
            decision_definition_id=_as_str(body.get("decisionDefinitionKey")),
            decision_requirements_id=reported_requirements_id,
            tenant_id=_as_str(body.get("tenantId")),
        )

    def check_connection(self) -> dict:
        response = self._request("GET", _TOPOLOGY_PATH)
        body = _json_object(response) or {}
        return {
            "engine": "reachable",
            "gateway_version": body.get("gatewayVersion"),
        }


@lru_cache
def get_decision_engine() -> DecisionEngine:
    """
    FastAPI dependency returning the process-wide decision engine client.

    Tests replace it through app.dependency_overrides.
    """
    settings = get_settings()
    logger.info("Decision engine client targets %s", settings.zeebe_rest_address)
    return CamundaDecisionEngine(
        base_url=settings.zeebe_rest_address,
        client_id=settings.zeebe_client_id,
        client_secret=settings.zeebe_client_secret,
        oauth_url=settings.camunda_oauth_url,
        audience=settings.zeebe_token_audience,
        tenant_id=settings.camunda_tenant_id,
        timeout=settings.request_timeout,
    )
