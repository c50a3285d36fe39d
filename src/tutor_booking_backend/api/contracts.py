'''
API endpoints for recurring contracts.
'''
from typing import Annotated, List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status

from ..database.db_enums import ContractStatusEnum
from ..models import contracts as contract_models
from ..models.token import Actor
from ..services.security import verify_token_and_get_actor
from ..services.contract_service import ContractService


class ContractsAPI:
    def __init__(self):
        self.router = APIRouter(
            prefix="/contracts",
            tags=["Contracts"]
        )
        self._register_routes()

    def _register_routes(self):
        self.router.add_api_route(
                "/",
                self.propose_contract,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=contract_models.ContractRead)
        self.router.add_api_route(
                "/",
                self.list_contracts,
                methods=["GET"],
                response_model=List[contract_models.ContractRead])
        self.router.add_api_route(
                "/{contract_id}",
                self.get_contract,
                methods=["GET"],
                response_model=contract_models.ContractRead)
        self.router.add_api_route(
                "/{contract_id}",
                self.edit_contract,
                methods=["PUT"],
                response_model=contract_models.ContractRead)
        self.router.add_api_route(
                "/{contract_id}/respond",
                self.respond_to_contract,
                methods=["POST"],
                response_model=contract_models.ContractResponseResult)
        self.router.add_api_route(
                "/{contract_id}/cancel",
                self.cancel_contract,
                methods=["PATCH"],
                response_model=contract_models.ContractRead)

    async def propose_contract(
        self,
        proposal: contract_models.ContractProposeInput,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        contract_service: Annotated[ContractService, Depends(ContractService)]
    ):
        """
        Proposes a recurring schedule to a tutor. Credits are only checked
        here; they are reserved when the tutor accepts.
        """
        return await contract_service.propose_contract_for_api(proposal, current_user)

    async def list_contracts(
        self,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        contract_service: Annotated[ContractService, Depends(ContractService)],
        status_filter: Annotated[Optional[ContractStatusEnum], Query(alias="status")] = None
    ):
        return await contract_service.list_contracts_for_api(current_user, status_filter)

    async def get_contract(
        self,
        contract_id: UUID,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        contract_service: Annotated[ContractService, Depends(ContractService)]
    ):
        return await contract_service.get_contract_for_api(contract_id, current_user)

    async def edit_contract(
        self,
        contract_id: UUID,
        changes: contract_models.ContractEditInput,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        contract_service: Annotated[ContractService, Depends(ContractService)]
    ):
        return await contract_service.edit_contract_for_api(contract_id, changes, current_user)

    async def respond_to_contract(
        self,
        contract_id: UUID,
        response: contract_models.ContractRespondInput,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        contract_service: Annotated[ContractService, Depends(ContractService)]
    ):
        """
        Accepting books every occurrence that is still free and reports the
        ones that had to be skipped.
        """
        return await contract_service.respond_to_contract_for_api(contract_id, response, current_user)

    async def cancel_contract(
        self,
        contract_id: UUID,
        cancellation: contract_models.ContractCancelInput,
        current_user: Annotated[Actor, Depends(verify_token_and_get_actor)],
        contract_service: Annotated[ContractService, Depends(ContractService)]
    ):
        return await contract_service.cancel_contract_for_api(contract_id, cancellation, current_user)


# Instantiate the class and export its router
contracts_api = ContractsAPI()
router = contracts_api.router
