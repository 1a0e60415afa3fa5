"""Truck and driver registration"""

from fastapi import APIRouter, Depends, Request

from stms_billing.api.dependencies import get_ledger_store, get_request_id
from stms_billing.api.errors import domain_errors
from stms_billing.api.v1.schemas import DriverCreate, DriverResponse, TruckCreate, TruckResponse
from stms_billing.domain.models import Driver, Truck
from stms_billing.infrastructure.database.store import SqlLedgerStore

router = APIRouter()


@router.post("/trucks", response_model=TruckResponse, status_code=201)
def create_truck(body: TruckCreate, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    with domain_errors(get_request_id(request), "create_truck"):
        truck = store.add(Truck(registration_number=body.registration_number))
    return TruckResponse.model_validate(truck)


@router.get("/trucks/{truck_id}", response_model=TruckResponse)
def get_truck(truck_id: int, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    with domain_errors(get_request_id(request), "get_truck"):
        return TruckResponse.model_validate(store.trucks.get(truck_id))


@router.post("/drivers", response_model=DriverResponse, status_code=201)
def create_driver(body: DriverCreate, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    with domain_errors(get_request_id(request), "create_driver"):
        driver = store.add(Driver(name=body.name, license_number=body.license_number))
    return DriverResponse.model_validate(driver)


@router.get("/drivers/{driver_id}", response_model=DriverResponse)
def get_driver(driver_id: int, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    with domain_errors(get_request_id(request), "get_driver"):
        return DriverResponse.model_validate(store.drivers.get(driver_id))
