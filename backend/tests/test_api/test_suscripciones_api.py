"""Tests for subscription and lifecycle endpoints."""

import uuid

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio


async def _subscribe(client: AsyncClient, user_id, plan_id, fecha: str = "2025-01-01") -> dict:
    response = await client.post(
        "/api/suscripciones",
        json={"usuarioId": str(user_id), "planId": str(plan_id), "fechaInicio": fecha},
    )
    assert response.status_code == 201, response.text
    return response.json()


# ---------------------------------------------------------------------------
# POST /api/suscripciones
# ---------------------------------------------------------------------------


class TestCreateSubscription:
    async def test_create_active(self, client: AsyncClient, test_user, basic_plan) -> None:
        data = await _subscribe(client, test_user.id, basic_plan.id)
        assert data["estado"] == "ACTIVA"
        assert data["usuarioId"] == str(test_user.id)
        assert data["planId"] == str(basic_plan.id)
        assert data["fechaInicio"] == "2025-01-01"
        assert data["proximaFacturacion"] == "2025-01-31"
        assert data["precioActual"] == "10.00"
        assert data["creditoPendiente"] == "0.00"
        assert data["renovacionAutomatica"] is True
        assert data["version"] == 1

    async def test_create_trial(self, client: AsyncClient, test_user, trial_plan) -> None:
        data = await _subscribe(client, test_user.id, trial_plan.id)
        assert data["estado"] == "TRIAL"
        assert data["proximaFacturacion"] == "2025-01-15"

    async def test_second_live_subscription(self, client: AsyncClient, active_subscription, premium_plan) -> None:
        response = await client.post(
            "/api/suscripciones",
            json={"usuarioId": str(active_subscription.user_id), "planId": str(premium_plan.id)},
        )
        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "InvalidTransition"
        assert "detail" in body

    async def test_unknown_plan(self, client: AsyncClient, test_user) -> None:
        response = await client.post(
            "/api/suscripciones", json={"usuarioId": str(test_user.id), "planId": str(uuid.uuid4())}
        )
        assert response.status_code == 404


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    async def test_get_and_filters(self, client: AsyncClient, active_subscription) -> None:
        sub_id = str(active_subscription.id)

        fetched = await client.get(f"/api/suscripciones/{sub_id}")
        assert fetched.status_code == 200
        assert fetched.json()["id"] == sub_id

        by_user = await client.get(f"/api/suscripciones/usuario/{active_subscription.user_id}")
        assert [s["id"] for s in by_user.json()] == [sub_id]

        active = await client.get("/api/suscripciones/estado/ACTIVA")
        assert sub_id in [s["id"] for s in active.json()]
        cancelled = await client.get("/api/suscripciones/estado/CANCELADA")
        assert sub_id not in [s["id"] for s in cancelled.json()]

    async def test_unknown_state_in_path(self, client: AsyncClient) -> None:
        response = await client.get("/api/suscripciones/estado/PAUSADA")
        assert response.status_code == 422

    async def test_bad_uuid(self, client: AsyncClient) -> None:
        response = await client.get("/api/suscripciones/not-a-uuid")
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# POST /api/suscripciones/{id}/cambiar-plan
# ---------------------------------------------------------------------------


class TestChangePlan:
    async def test_upgrade_is_invoiced(self, client: AsyncClient, active_subscription, premium_plan) -> None:
        response = await client.post(
            f"/api/suscripciones/{active_subscription.id}/cambiar-plan",
            json={"planId": str(premium_plan.id), "fechaEfectiva": "2025-01-16"},
        )
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["cargoProrrateo"] == "10.00"
        assert data["nuevoPrecio"] == "30.00"
        assert data["diasRestantes"] == 15
        assert data["suscripcion"]["planId"] == str(premium_plan.id)
        assert data["suscripcion"]["precioActual"] == "30.00"
        invoice = data["facturaProrrateo"]
        assert invoice["esProrrateo"] is True
        assert invoice["total"] == "12.10"
        assert invoice["fechaVencimiento"] == "2025-01-23"

    async def test_downgrade_becomes_credit(self, client: AsyncClient, test_user, basic_plan, premium_plan) -> None:
        sub = await _subscribe(client, test_user.id, premium_plan.id)
        response = await client.post(
            f"/api/suscripciones/{sub['id']}/cambiar-plan",
            json={"planId": str(basic_plan.id), "fechaEfectiva": "2025-01-16"},
        )
        data = response.json()
        assert data["cargoProrrateo"] == "-10.00"
        assert data["facturaProrrateo"] is None
        assert data["suscripcion"]["creditoPendiente"] == "10.00"

    async def test_same_plan_is_rejected(self, client: AsyncClient, active_subscription) -> None:
        response = await client.post(
            f"/api/suscripciones/{active_subscription.id}/cambiar-plan",
            json={"planId": str(active_subscription.plan_id)},
        )
        assert response.status_code == 409
        assert response.json()["error"] == "NoOpChange"


# ---------------------------------------------------------------------------
# PATCH /api/suscripciones/{id}/estado
# ---------------------------------------------------------------------------


class TestChangeStatus:
    async def test_delinquent_with_overdue_invoice(self, client: AsyncClient, active_subscription) -> None:
        sub_id = active_subscription.id
        # Issues an invoice due 2025-02-15, long past by now
        await client.post("/api/facturas/ejecutar-facturacion", params={"fecha": "2025-01-31"})

        response = await client.patch(f"/api/suscripciones/{sub_id}/estado", json={"estado": "MOROSA"})
        assert response.status_code == 200
        assert response.json()["estado"] == "MOROSA"

        settle = await client.patch(f"/api/suscripciones/{sub_id}/estado", json={"estado": "ACTIVA"})
        assert settle.status_code == 409
        assert settle.json()["error"] == "InvalidTransition"

    async def test_delinquent_without_invoices(self, client: AsyncClient, active_subscription) -> None:
        response = await client.patch(f"/api/suscripciones/{active_subscription.id}/estado", json={"estado": "MOROSA"})
        assert response.status_code == 409

    async def test_illegal_move(self, client: AsyncClient, active_subscription) -> None:
        response = await client.patch(
            f"/api/suscripciones/{active_subscription.id}/estado", json={"estado": "SUSPENDIDA"}
        )
        assert response.status_code == 409
        assert response.json()["error"] == "InvalidTransition"

    async def test_cancel_needs_reason(self, client: AsyncClient, active_subscription) -> None:
        response = await client.patch(
            f"/api/suscripciones/{active_subscription.id}/estado", json={"estado": "CANCELADA"}
        )
        assert response.status_code == 400

        ok = await client.patch(
            f"/api/suscripciones/{active_subscription.id}/estado",
            json={"estado": "CANCELADA", "motivo": "Cierre de empresa"},
        )
        assert ok.json()["estado"] == "CANCELADA"
        assert ok.json()["motivoCancelacion"] == "Cierre de empresa"


# ---------------------------------------------------------------------------
# /api/suscripciones/ciclo-vida
# ---------------------------------------------------------------------------


class TestLifecycleEndpoints:
    async def test_cancel_and_reactivate(self, client: AsyncClient, active_subscription) -> None:
        base = f"/api/suscripciones/ciclo-vida/{active_subscription.id}"

        cancelled = await client.post(f"{base}/cancelar", params={"motivo": "Demasiado caro"})
        assert cancelled.status_code == 200
        assert cancelled.json()["estado"] == "CANCELADA"
        assert cancelled.json()["fechaCancelacion"] is not None

        again = await client.post(f"{base}/cancelar", params={"motivo": "Otra vez"})
        assert again.status_code == 409

        reactivated = await client.post(f"{base}/reactivar")
        assert reactivated.status_code == 200, reactivated.text
        assert reactivated.json()["estado"] == "ACTIVA"
        assert reactivated.json()["motivoCancelacion"] is None

    async def test_cancel_without_reason(self, client: AsyncClient, active_subscription) -> None:
        response = await client.post(f"/api/suscripciones/ciclo-vida/{active_subscription.id}/cancelar")
        assert response.status_code == 422

    async def test_reactivate_active_subscription(self, client: AsyncClient, active_subscription) -> None:
        response = await client.post(f"/api/suscripciones/ciclo-vida/{active_subscription.id}/reactivar")
        assert response.status_code == 409

    async def test_toggle_renewal(self, client: AsyncClient, active_subscription) -> None:
        base = f"/api/suscripciones/ciclo-vida/{active_subscription.id}/toggle-renovacion"
        off = await client.post(base, params={"renovacionAutomatica": "false"})
        assert off.status_code == 200
        assert off.json()["renovacionAutomatica"] is False
        on = await client.post(base, params={"renovacionAutomatica": "true"})
        assert on.json()["renovacionAutomatica"] is True

    async def test_statistics(self, client: AsyncClient, active_subscription, trial_plan) -> None:
        other = await client.post(
            "/api/usuarios",
            json={"email": f"trial-{uuid.uuid4().hex[:8]}@test.com", "password": "clave-segura", "nombre": "T"},
        )
        await _subscribe(client, other.json()["id"], trial_plan.id)

        response = await client.get("/api/suscripciones/ciclo-vida/estadisticas")
        assert response.status_code == 200
        data = response.json()
        assert data["totalSuscripciones"] == 2
        assert data["porEstado"]["ACTIVA"] == 1
        assert data["porEstado"]["TRIAL"] == 1
        assert data["conRenovacionAutomatica"] == 2
        assert data["ingresoMensualRecurrente"] == "10.00"


# ---------------------------------------------------------------------------
# DELETE /api/suscripciones/{id}
# ---------------------------------------------------------------------------


class TestDeleteSubscription:
    async def test_live_subscription_cannot_be_deleted(self, client: AsyncClient, active_subscription) -> None:
        response = await client.delete(f"/api/suscripciones/{active_subscription.id}")
        assert response.status_code == 409

    async def test_cancelled_without_invoices(self, client: AsyncClient, active_subscription) -> None:
        sub_id = active_subscription.id
        await client.post(f"/api/suscripciones/ciclo-vida/{sub_id}/cancelar", params={"motivo": "Fin"})
        response = await client.delete(f"/api/suscripciones/{sub_id}")
        assert response.status_code == 200
        assert response.json() == {"mensaje": "Suscripción eliminada"}
        assert (await client.get(f"/api/suscripciones/{sub_id}")).status_code == 404
