#!/usr/bin/env python
"""Seed a manager, two employees and two client sites for local runs.

Run after `alembic upgrade head`. Existing rows (matched by email or client
name) are left untouched, so the script can be re-run safely.
"""
from __future__ import annotations

import json
import sys
from pathlib import Path

from sqlalchemy import select

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from fieldtrack.db import SessionLocal
from fieldtrack.models import Client, EmployeeClient, User, UserRole
from fieldtrack.security import hash_password, normalize_email

DEMO_PASSWORD = "password123"

DEMO_CLIENTS = (
    {"name": "Acme Logistics", "address": "Sector 18, Noida", "latitude": 28.5706, "longitude": 77.3219},
    {"name": "Globex Retail", "address": "Connaught Place, New Delhi", "latitude": 28.6315, "longitude": 77.2167},
)


def _get_or_create_user(session, *, name: str, email: str, role: UserRole, manager_id: int | None) -> User:
    normalized = normalize_email(email)
    user = session.scalar(select(User).where(User.email == normalized))
    if user is not None:
        return user
    user = User(
        name=name,
        email=normalized,
        password_hash=hash_password(DEMO_PASSWORD),
        role=role,
        manager_id=manager_id,
    )
    session.add(user)
    session.flush()
    return user


def _get_or_create_client(session, values: dict) -> Client:
    client = session.scalar(select(Client).where(Client.name == values["name"]))
    if client is not None:
        return client
    client = Client(**values)
    session.add(client)
    session.flush()
    return client


def run() -> dict:
    with SessionLocal() as session:
        manager = _get_or_create_user(
            session,
            name="Priya Manager",
            email="manager@example.com",
            role=UserRole.MANAGER,
            manager_id=None,
        )
        employees = [
            _get_or_create_user(
                session,
                name=f"Field Employee {index}",
                email=f"employee{index}@example.com",
                role=UserRole.EMPLOYEE,
                manager_id=manager.id,
            )
            for index in (1, 2)
        ]
        clients = [_get_or_create_client(session, values) for values in DEMO_CLIENTS]

        assignments = 0
        for employee in employees:
            for client in clients:
                exists = session.scalar(
                    select(EmployeeClient).where(
                        EmployeeClient.employee_id == employee.id,
                        EmployeeClient.client_id == client.id,
                    )
                )
                if exists is None:
                    session.add(EmployeeClient(employee_id=employee.id, client_id=client.id))
                    assignments += 1
        session.commit()

        return {
            "manager_id": manager.id,
            "employee_ids": [employee.id for employee in employees],
            "client_ids": [client.id for client in clients],
            "new_assignments": assignments,
            "password": DEMO_PASSWORD,
        }


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
