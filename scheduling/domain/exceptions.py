class SchedulingException(Exception):
    pass


class BusinessRuleException(SchedulingException):
    pass


class NotFoundException(BusinessRuleException):
    pass


class DoctorUnverifiedException(BusinessRuleException):
    pass


class InvalidDateException(BusinessRuleException):
    pass


class OutsideAvailabilityException(BusinessRuleException):
    pass


class InvalidSlotException(BusinessRuleException):
    pass


class SlotConflictException(BusinessRuleException):
    pass


class InvalidTransitionException(BusinessRuleException):
    pass


class ForbiddenException(BusinessRuleException):
    pass


class UnavailableException(SchedulingException):
    pass


class LockContentionException(UnavailableException):
    """Raised by a store when a slot or appointment lock is contended.

    Retried by the booking service; never reported to callers as such.
    """
