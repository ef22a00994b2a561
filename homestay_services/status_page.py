"""
homestay_services.status_page -- Callback status pages.

Responsibility:
    Maps a gateway status code to the text and tone shown to the payer,
    builds the portal redirect for the outcome and renders the Jinja2
    templates under ``templates/``.

Architecture position:
    Services -- presentation helpers for the Settlement Reconciler.  No
    database access.

Status codes:
    ``1`` confirmed, ``0`` failed (payer told to keep the GRN), ``2``
    pending; anything else renders a generic page whose tone follows the
    code.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote

from jinja2 import Environment, PackageLoader, select_autoescape

SUCCESS = "success"
FAILED = "failed"
PENDING = "pending"


@dataclass(frozen=True)
class StatusMeta:
    title: str
    description: str
    tone: str
    follow_up: str
    redirect_state: str


STATUS_META: dict[str, StatusMeta] = {
    "1": StatusMeta(
        title="Payment Confirmed",
        description=(
            "HimKosh has confirmed your payment. The HP Tourism portal will "
            "unlock your certificate momentarily."
        ),
        tone="success",
        follow_up="You may close this tab once the main window updates.",
        redirect_state=SUCCESS,
    ),
    "0": StatusMeta(
        title="Payment Failed",
        description="HimKosh reported a failure while processing the payment.",
        tone="error",
        follow_up=(
            "If funds were deducted, note the GRN and contact support for reconciliation."
        ),
        redirect_state=FAILED,
    ),
    "2": StatusMeta(
        title="Payment Pending",
        description="The transaction is still being processed by HimKosh.",
        tone="pending",
        follow_up=(
            "Keep this page open or refresh the HP Tourism portal shortly to view "
            "the latest status."
        ),
        redirect_state=PENDING,
    ),
}

_TONE_COLORS = {
    "success": ("#0f766e", "#ecfdf5"),
    "pending": ("#ca8a04", "#fef9c3"),
    "error": ("#b91c1c", "#fee2e2"),
}


def status_meta(status_cd: str | None, status_text: str | None = None) -> StatusMeta:
    code = status_cd or status_text or ""
    if code in STATUS_META:
        return STATUS_META[code]
    state = SUCCESS if code == "1" else PENDING if code == "2" else FAILED
    return StatusMeta(
        title="Payment Status Received",
        description=(
            f"Gateway reported status: {status_text}"
            if status_text
            else "The payment response was received from HimKosh."
        ),
        tone="success" if state == SUCCESS else "pending" if state == PENDING else "error",
        follow_up="Review the details below and return to the portal.",
        redirect_state=state,
    )


def redirect_path(
    application_id: str,
    state: str,
    dept_ref_no: str | None,
    ech_txn_id: str | None,
) -> str:
    """Portal path the payer returns to after the callback."""
    if state == SUCCESS:
        return (
            f"/dashboard?payment={state}&application={application_id}"
            f"&appNo={quote(dept_ref_no or '', safe='-')}"
        )
    return (
        f"/applications/{application_id}?payment={state}"
        f"&himgrn={quote(ech_txn_id or '', safe='')}"
    )


def format_inr(amount: int | float | None) -> str:
    """Indian digit grouping: 123456 -> 1,23,456."""
    if amount is None:
        return ""
    digits = str(int(amount))
    sign = ""
    if digits.startswith("-"):
        sign, digits = "-", digits[1:]
    if len(digits) <= 3:
        return sign + digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return sign + ",".join(groups + [tail])


@dataclass(frozen=True)
class CallbackPage:
    meta: StatusMeta
    application_number: str | None = None
    amount: int | None = None
    reference: str | None = None
    redirect_url: str | None = None
    redirect_delay_seconds: int = 4


_environment = Environment(
    loader=PackageLoader("homestay_services", "templates"),
    autoescape=select_autoescape(["html"]),
)
_environment.filters["inr"] = format_inr


def render_status_page(page: CallbackPage) -> str:
    color, background = _TONE_COLORS.get(page.meta.tone, _TONE_COLORS["error"])
    return _environment.get_template("payment_status.html").render(
        page=page,
        meta=page.meta,
        tone_color=color,
        tone_background=background,
    )


def render_processing_page() -> str:
    """Holding page for the gateway's pre-flight GET."""
    return _environment.get_template("payment_processing.html").render()
