import contextvars

# This context variable holds the client used when none is passed explicitly.
current_client = contextvars.ContextVar("current_client", default=None)
