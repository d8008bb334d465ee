"""FastAPI dependency-injection callables.

The services are built once in the application lifespan and kept on
``app.state.services``; route handlers receive them through ``Depends()``.
"""

import logging

from fastapi import HTTPException, Request, status

from chipledger.services import LedgerServices

logger = logging.getLogger("chipledger.dependencies")


def get_services(request: Request) -> LedgerServices:
    """Return the ledger services of the running application.

    Raises:
        HTTPException 503: The application started without a database.
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        logger.warning("Request to %s while the database is unavailable", request.url.path)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not available",
        )
    return services
