from .enums import Category, Role, Severity, TicketStatus, Visibility
from .profile import Account, AuthSession, Profile
from .ticket import Ticket, Upvote
