"""
homestay_services.gateway_client -- Server-to-server calls to the treasury.

Responsibility:
    POSTs an encrypted verification payload to the HimKosh verification
    endpoint and returns the parsed ``key=value|...`` answer.  Keys keep
    the gateway's casing (``TXN_STAT``, ...).

Architecture position:
    Services -- the only module that talks HTTP to the gateway.  Built on
    ``requests`` with an injectable ``requests.Session`` for tests.

Failure modes:
    - GatewayUnavailableError on connection errors, timeouts and non-2xx
      answers.  Callers decide whether to retry.
"""

from __future__ import annotations

import requests

from homestay_engines.gateway_codec import parse_fields
from homestay_kernel.exceptions import GatewayUnavailableError
from homestay_kernel.logging_config import get_logger

logger = get_logger("services.gateway_client")


class GatewayClient:
    def __init__(
        self,
        verification_url: str,
        timeout: float = 30.0,
        http: requests.Session | None = None,
    ):
        self._verification_url = verification_url
        self._timeout = timeout
        self._http = http or requests.Session()

    def verify(self, encdata: str) -> dict[str, str]:
        """Ask the gateway for the true status of one transaction."""
        try:
            response = self._http.post(
                self._verification_url,
                data={"encdata": encdata},
                timeout=self._timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning(
                "gateway_verification_unreachable",
                extra={"url": self._verification_url, "error": str(exc)},
            )
            raise GatewayUnavailableError(self._verification_url, str(exc)) from exc

        fields = parse_fields(response.text, lowercase_keys=False)
        logger.info(
            "gateway_verification_answered",
            extra={"http_status": response.status_code, "fields": sorted(fields)},
        )
        return fields
