"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth/Identity
  2xxx: Listing
  3xxx: Bid
  4xxx: Inventory
  5xxx: Coupon
  6xxx: Settlement/Order
  9xxx: System (9004 wraps request body/query validation failures)

Caller-correctable errors carry a 4xx http_status. ConcurrencyConflictError is a
system-invariant conflict: run_in_transaction retries it before surfacing
RetryExhaustedError.
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Auth/Identity ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1003, "Invalid or expired token", 401)


class ForbiddenError(AppError):
    def __init__(self, detail: str = "Not authorized") -> None:
        super().__init__(1004, detail, 403)


# --- 2xxx: Listing ---

class ListingNotFoundError(AppError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(2001, f"Listing not found: {listing_id}", 404)


class InvalidListingError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(2002, f"Invalid listing: {detail}", 422)


class InvalidListingTransitionError(AppError):
    def __init__(self, listing_id: str, status: str, action: str, reason: str = "") -> None:
        message = f"Listing {listing_id} in status {status} cannot {action}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(2003, message, 422)


# --- 3xxx: Bid ---

class ListingNotActiveError(AppError):
    def __init__(self, listing_id: str, reason: str = "listing is not active") -> None:
        super().__init__(3001, f"Bidding closed for {listing_id}: {reason}", 422)


class SelfBidError(AppError):
    def __init__(self) -> None:
        super().__init__(3002, "Sellers cannot bid on their own listing", 422)


class BidTooLowError(AppError):
    def __init__(self, amount: int, minimum_exclusive: int | None, starting: int | None = None) -> None:
        if minimum_exclusive is not None:
            message = f"Bid of {amount} cents must exceed current highest {minimum_exclusive} cents"
        else:
            message = f"Bid of {amount} cents is below starting price {starting} cents"
        super().__init__(3003, message, 422)


class NotAnAuctionError(AppError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(3004, f"Listing {listing_id} is not an auction", 422)


class BidNotFoundError(AppError):
    def __init__(self, bid_id: str) -> None:
        super().__init__(3005, f"Bid not found: {bid_id}", 404)


class BidNotRetractableError(AppError):
    def __init__(self, bid_id: str, status: str) -> None:
        super().__init__(3006, f"Bid {bid_id} in status {status} cannot be retracted", 422)


class AuctionNotEndedError(AppError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(3007, f"Auction {listing_id} has not ended yet", 422)


# --- 4xxx: Inventory ---

class InsufficientStockError(AppError):
    def __init__(self, requested: int, available: int) -> None:
        super().__init__(
            4001,
            f"Insufficient stock: requested {requested}, available {available}",
            422,
        )


class ReservationNotFoundError(AppError):
    def __init__(self, reservation_id: str) -> None:
        super().__init__(4002, f"Reservation not found: {reservation_id}", 404)


class ReservationExpiredError(AppError):
    def __init__(self, reservation_id: str) -> None:
        super().__init__(4003, f"Reservation expired, please reserve again: {reservation_id}", 409)


class InvalidQuantityError(AppError):
    def __init__(self, quantity: int) -> None:
        super().__init__(4004, f"Quantity must be at least 1, got {quantity}", 422)


class ListingNotPurchasableError(AppError):
    def __init__(self, listing_id: str, reason: str) -> None:
        super().__init__(4005, f"Listing {listing_id} cannot be purchased: {reason}", 422)


# --- 5xxx: Coupon ---

class CouponNotFoundError(AppError):
    def __init__(self, code: str) -> None:
        super().__init__(5001, f"Coupon not found or inactive: {code}", 404)


class CouponExpiredError(AppError):
    def __init__(self, code: str, detail: str = "Coupon has expired") -> None:
        super().__init__(5002, f"{detail}: {code}", 422)


class CouponUsageLimitReachedError(AppError):
    def __init__(self, code: str) -> None:
        super().__init__(5003, f"Coupon usage limit reached: {code}", 422)


class CouponMinimumNotMetError(AppError):
    def __init__(self, code: str, minimum: int) -> None:
        super().__init__(5004, f"Minimum purchase for {code} is {minimum} cents", 422)


class CouponNotApplicableError(AppError):
    def __init__(self, code: str) -> None:
        super().__init__(5005, f"Coupon {code} is not applicable to these products", 422)


class CouponUserLimitReachedError(AppError):
    def __init__(self, code: str) -> None:
        super().__init__(5006, f"Coupon {code} already used the maximum number of times", 422)


class CouponCodeExistsError(AppError):
    def __init__(self, code: str) -> None:
        super().__init__(5007, f"Coupon code already exists: {code}", 409)


class InvalidCouponError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(5008, f"Invalid coupon: {detail}", 422)


# --- 6xxx: Settlement/Order ---

class EmptyCartError(AppError):
    def __init__(self) -> None:
        super().__init__(6001, "Order must contain at least one item", 422)


class ReservationMismatchError(AppError):
    def __init__(self, reservation_id: str, detail: str) -> None:
        super().__init__(6002, f"Reservation {reservation_id} does not match cart: {detail}", 422)


class AlreadySettledError(AppError):
    def __init__(self, bid_id: str) -> None:
        super().__init__(6003, f"Winning bid already settled: {bid_id}", 409)


class BidNotWonError(AppError):
    def __init__(self, bid_id: str, status: str) -> None:
        super().__init__(6004, f"Bid {bid_id} is {status}, not won", 422)


class ListingNotClosedError(AppError):
    def __init__(self, listing_id: str, status: str) -> None:
        super().__init__(6005, f"Listing {listing_id} is {status}, not closed", 422)


class OrderNotFoundError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(6006, f"Order not found: {order_id}", 404)


class InvalidOrderTransitionError(AppError):
    def __init__(self, order_id: str, status: str, target: str) -> None:
        super().__init__(6007, f"Order {order_id} in status {status} cannot move to {target}", 422)


class InvalidRefundError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(6008, f"Invalid refund: {detail}", 422)


# --- 9xxx: System ---

class ConcurrencyConflictError(AppError):
    def __init__(self, detail: str = "Concurrent update detected") -> None:
        super().__init__(9001, detail, 409)


class RetryExhaustedError(AppError):
    def __init__(self) -> None:
        super().__init__(9003, "The resource is busy, please retry", 409)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class InvalidRequestError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(9004, f"Invalid request: {detail}", 422)
