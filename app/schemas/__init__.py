from app.schemas.common import PaginatedResponse, ErrorResponse, SeatsUnavailableError, PriceChangedError
from app.schemas.account import AccountSummary
from app.schemas.catalog import (
    Slot, Seat, SeatType, SeatMapResponse, SeatMapRow, SeatMapSeat, Product,
    MovieSummary, CinemaSummary, RoomSummary,
)
from app.schemas.ticket import (
    BookingCreate, BookingSeatIn, BookingComboIn, BookingCancelResponse,
    Ticket, TicketSeat, TicketProduct, TicketSlot, TicketPayment,
)
from app.schemas.payment import (
    PaymentCreateRequest, PaymentCreateResponse, IpnResponse, PaymentQueryResponse,
)
from app.schemas.promotion import (
    VoucherActivateRequest, Voucher, PromotionSummary, PromotionStats, Activation,
)
