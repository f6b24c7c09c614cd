from fastapi import HTTPException, status

from esign_desk.integrations.esign.errors import ConfigurationError
from esign_desk.services.contract_flow_service import ContractFlowError


def contract_flow_http_error(exc: ContractFlowError) -> HTTPException:
    if exc.code == "CONTRACT_NOT_FOUND":
        status_code = status.HTTP_404_NOT_FOUND
    elif exc.is_precondition:
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc.cause, ConfigurationError):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        status_code = status.HTTP_502_BAD_GATEWAY
    return HTTPException(status_code=status_code, detail=exc.to_dict())
