# Overview: Fire-and-forget notification hook invoked after a booking commits.

"""
Message dispatch (reminders, WhatsApp, email) lives outside this service.
The core only announces that a booking exists; the configured hook decides
what to send. A failing hook is logged and never undoes the booking.

Configure with NOTIFICATION_HOOK = "package.module:function"; the function
receives the appointment as a dict.
"""

from importlib import import_module

from flask import current_app


def _resolve_hook():
    hook = current_app.config.get("NOTIFICATION_HOOK")
    if not hook or callable(hook):
        return hook
    module_name, _, attr = hook.partition(":")
    return getattr(import_module(module_name), attr)


def appointment_created(appointment) -> bool:
    """Returns True when a hook ran without raising."""
    payload = appointment.to_dict()
    try:
        hook = _resolve_hook()
        if hook is None:
            current_app.logger.debug("No notification hook configured for appointment %s", appointment.id)
            return False
        hook(payload)
        return True
    except Exception:
        current_app.logger.exception("Notification hook failed for appointment %s", appointment.id)
        return False
