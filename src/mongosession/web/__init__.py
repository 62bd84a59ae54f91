from mongosession.web.deps import SessionDependency, StoreDep, get_store
from mongosession.web.error_handlers import register_error_handlers, session_error_handler
from mongosession.web.lifespan import make_lifespan, session_lifespan

__all__ = [
    "SessionDependency",
    "StoreDep",
    "get_store",
    "make_lifespan",
    "register_error_handlers",
    "session_error_handler",
    "session_lifespan",
]
