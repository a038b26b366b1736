"""Listing lifecycle.

    draft ──activate──▶ active ──close──▶ closed ──sell──▶ sold
      │                   │ └──sell_out──▶ sold         │
      └──cancel──▶ cancelled ◀──cancel──┘  ◀──cancel───┘

close and sell apply to auctions only, sell_out to fixed-price listings only.
Cancelling a closed auction is allowed only while no order is attached and no
winning bid is waiting to settle (a defaulted winner is demoted to lost first).
`apply_transition` mutates the listing and returns the audit record; the caller
persists both in one transaction.
"""
from datetime import datetime

from src.mk_common.enums import ListingAction, ListingStatus
from src.mk_common.errors import InvalidListingTransitionError
from src.mk_listing.domain.models import Listing, ListingTransition

TRANSITIONS: dict[tuple[ListingStatus, ListingAction], ListingStatus] = {
    (ListingStatus.DRAFT, ListingAction.ACTIVATE): ListingStatus.ACTIVE,
    (ListingStatus.ACTIVE, ListingAction.CLOSE): ListingStatus.CLOSED,
    (ListingStatus.ACTIVE, ListingAction.SELL_OUT): ListingStatus.SOLD,
    (ListingStatus.CLOSED, ListingAction.SELL): ListingStatus.SOLD,
    (ListingStatus.DRAFT, ListingAction.CANCEL): ListingStatus.CANCELLED,
    (ListingStatus.ACTIVE, ListingAction.CANCEL): ListingStatus.CANCELLED,
    (ListingStatus.CLOSED, ListingAction.CANCEL): ListingStatus.CANCELLED,
}


def _check_guards(
    listing: Listing,
    action: ListingAction,
    now: datetime,
    has_order: bool,
    winner_pending: bool = False,
) -> str | None:
    """Return a rejection reason, or None if the guard passes."""
    if action is ListingAction.ACTIVATE:
        if listing.remaining_quantity <= 0:
            return "quantity must be greater than 0"
        if listing.is_auction:
            if listing.auction_ends_at is None:
                return "auction end time is required"
            if listing.auction_ends_at <= now:
                return "auction end time must be in the future"
    elif action in (ListingAction.CLOSE, ListingAction.SELL):
        if not listing.is_auction:
            return "only auctions can be closed"
    elif action is ListingAction.SELL_OUT:
        if listing.is_auction:
            return "auctions are sold through settlement"
        if listing.remaining_quantity > 0:
            return "stock remaining"
    elif action is ListingAction.CANCEL:
        if listing.status == ListingStatus.CLOSED and has_order:
            return "an order is attached"
        if listing.status == ListingStatus.CLOSED and winner_pending:
            return "the winning bid has not defaulted"
    return None


def can_transition(
    listing: Listing,
    action: ListingAction,
    now: datetime,
    has_order: bool = False,
    winner_pending: bool = False,
) -> bool:
    key = (ListingStatus(listing.status), action)
    return (
        key in TRANSITIONS
        and _check_guards(listing, action, now, has_order, winner_pending) is None
    )


def apply_transition(
    listing: Listing,
    action: ListingAction,
    now: datetime,
    actor_id: str | None = None,
    note: str | None = None,
    has_order: bool = False,
    winner_pending: bool = False,
) -> ListingTransition:
    current = ListingStatus(listing.status)
    target = TRANSITIONS.get((current, action))
    if target is None:
        raise InvalidListingTransitionError(listing.id, current.value, action.value)
    reason = _check_guards(listing, action, now, has_order, winner_pending)
    if reason is not None:
        raise InvalidListingTransitionError(listing.id, current.value, action.value, reason)

    listing.status = target.value
    listing.updated_at = now
    return ListingTransition(
        listing_id=listing.id,
        from_status=current.value,
        to_status=target.value,
        action=action.value,
        created_at=now,
        actor_id=actor_id,
        note=note,
    )
