from app.models.account import Account
from app.models.cinema import Cinema, Room
from app.models.movie import Movie
from app.models.slot import Slot
from app.models.seat import SeatType, Seat, SeatAvailability
from app.models.product import Product
from app.models.ticket import Ticket, TicketStatus, PaymentStatus, BookingSeat, TicketDetail
from app.models.promotion import Promotion, PromotionUsage, DiscountType, PromotionStatus
from app.models.payment import Payment
