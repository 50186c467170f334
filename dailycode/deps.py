from sqlmodel import Session
from . import crud
from .errors import InternalFailure


def get_session():
    # one session per request; the engine is set up by init_db at startup
    if crud.engine is None:
        raise InternalFailure("database not initialised")
    with Session(crud.engine) as session:
        yield session
