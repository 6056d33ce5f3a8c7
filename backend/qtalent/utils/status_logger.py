import logging
from sqlalchemy import event
from sqlalchemy.orm.attributes import NO_VALUE

from .. import models

logger = logging.getLogger(__name__)

_registered = False


def _listener_factory(model_name: str):
    """Return a SQLAlchemy attribute listener that logs status changes."""

    def _status_change(target, value, oldvalue, initiator):  # noqa: ANN001
        if oldvalue is NO_VALUE or oldvalue is None or oldvalue == value:
            return value
        entity_id = getattr(target, "id", "unknown")
        logger.info(
            "%s id=%s status changed from %s to %s",
            model_name,
            entity_id,
            getattr(oldvalue, "value", oldvalue),
            getattr(value, "value", value),
        )
        return value

    return _status_change


def register_status_listeners() -> None:
    """Attach listeners to every ORM-level status attribute.

    Conditional UPDATE statements bypass attribute events; those call sites
    log their own transitions.
    """
    global _registered
    if _registered:
        return
    for attr in (
        models.Booking.status,
        models.GigApplication.status,
        models.Payment.payment_status,
    ):
        event.listen(
            attr,  # type: ignore[arg-type]
            "set",
            _listener_factory(attr.class_.__name__),
            retval=False,
            propagate=True,
        )
    _registered = True
