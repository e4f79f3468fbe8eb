from dataclasses import replace

from drivers.models import Driver, DriverStatus
from rides.exceptions import ConflictError


class DriverStateException(ConflictError):
    """Raised when an invalid driver transition is attempted."""
    pass


def handle_driver_acceptance(driver: Driver) -> Driver:
    """
    Called before a driver's acceptance is written to the ride.
    Only an online driver can be claimed; a busy one is already on a ride.
    """
    if driver.status != DriverStatus.ONLINE:
        raise DriverStateException(f"Driver {driver.id} is {driver.status.value}, cannot take a ride")

    # Because Driver is a frozen dataclass, we must return a new instance via replace
    return replace(driver, status=DriverStatus.BUSY)


def handle_driver_release(driver: Driver) -> Driver:
    """
    Called when the driver's ride completes or is cancelled.
    Busy drivers go back online; any other status is kept (a driver who went
    offline mid-ride stays offline).
    """
    if driver.status != DriverStatus.BUSY:
        return driver
    return replace(driver, status=DriverStatus.ONLINE)
