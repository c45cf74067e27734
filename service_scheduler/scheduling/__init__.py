from service_scheduler.scheduling.availability import SlotAvailabilityCalculator
from service_scheduler.scheduling.booking import BookingTransaction
from service_scheduler.scheduling.conflicts import ConflictCheck, ConflictDetector
from service_scheduler.scheduling.matcher import TechnicianMatcher

__all__ = [
    "SlotAvailabilityCalculator",
    "ConflictDetector",
    "ConflictCheck",
    "TechnicianMatcher",
    "BookingTransaction",
]
