"""
Header-bidding setup classification.

Each signal rule inspects one record and reports which kind of
bidding it evidences.  The signals seen across the whole session are
then resolved into a single setup label, most specific first.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from adflow.models.analysis import HeaderBiddingSetup
from adflow.models.requests import RequestRecord
from adflow.utils import logger
from adflow.utils.errors import get_error_message

log = logger.create_logger("HB-Setup")

CLIENT = "client"
SERVER = "server"
OTHER = "other"
WATERFALL = "waterfall"

SERVER_AUCTION_PATHS = ("/pbs/v1/openrtb2/auction",)
SignalRule = Callable[[RequestRecord], str | None]


def _is_server_auction_url(url: str) -> bool:
    if any(path in url for path in SERVER_AUCTION_PATHS):
        return True
    return "/openrtb2/auction" in url and "prebid" in url.lower()


def _client_wrapper_signal(record: RequestRecord) -> str | None:
    if record.vendor_id == "prebid":
        return CLIENT
    if record.resource_type == "script" and "prebid" in record.url.lower():
        return CLIENT
    if record.stage == "auction" and not _is_server_auction_url(record.url):
        return CLIENT
    return None


def _server_wrapper_signal(record: RequestRecord) -> str | None:
    if record.vendor_id == "prebid-server" or _is_server_auction_url(record.url):
        return SERVER
    return None


def _other_bidder_signal(record: RequestRecord) -> str | None:
    if record.vendor_id == "amazon-tam" and record.request_type == "bid_request":
        return OTHER
    is_bid = record.stage == "bid_request" or record.request_type == "bid_request"
    if is_bid and record.vendor and record.vendor.category in ("ssp", "dsp"):
        return OTHER
    return None


def _waterfall_signal(record: RequestRecord) -> str | None:
    return WATERFALL if record.stage == "ad_server" else None


SIGNAL_RULES: list[SignalRule] = [
    _client_wrapper_signal,
    _server_wrapper_signal,
    _other_bidder_signal,
    _waterfall_signal,
]


def collect_signals(records: Iterable[RequestRecord]) -> set[str]:
    """Return every bidding signal raised by any record."""
    signals: set[str] = set()
    for record in records:
        for rule in SIGNAL_RULES:
            try:
                signal = rule(record)
            except Exception as err:
                log.warn(
                    "Setup signal rule failed",
                    {"rule": rule.__name__, "requestId": record.id, "error": get_error_message(err)},
                )
                continue
            if signal:
                signals.add(signal)
    return signals


# Resolution order: (required signals, setup label).
SETUP_RESOLUTION: list[tuple[frozenset[str], HeaderBiddingSetup]] = [
    (frozenset({CLIENT, SERVER}), "mixed"),
    (frozenset({CLIENT}), "client-wrapper"),
    (frozenset({SERVER}), "server-wrapper"),
    (frozenset({OTHER}), "other-wrapper"),
    (frozenset({WATERFALL}), "waterfall-only"),
]


def resolve_setup(signals: set[str]) -> HeaderBiddingSetup:
    for required, setup in SETUP_RESOLUTION:
        if required <= signals:
            return setup
    return "unknown"


def detect_setup(records: Iterable[RequestRecord]) -> HeaderBiddingSetup:
    """Classify the session's header-bidding setup."""
    return resolve_setup(collect_signals(records))
