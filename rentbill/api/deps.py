from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rentbill.database import get_db
from rentbill.services.bill_dispatcher import BillDispatcher, get_bill_dispatcher


def get_dispatcher() -> BillDispatcher:
    """Dependency returning the process-wide bill dispatcher."""
    return get_bill_dispatcher()


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
Dispatcher = Annotated[BillDispatcher, Depends(get_dispatcher)]
