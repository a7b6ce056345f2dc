"""Integration tests for portfolio and section endpoints.

  - anonymous calls are 401; another user's portfolio is a 404, never a 403
  - slugs: generated from the title with -2, -3 suffixes; explicit clash → 409
  - template/theme ids are checked against the catalog
  - soft-deleted portfolios vanish from every owner read
  - sections: append order, content validated per type, reorder, delete compaction
  - public view: token + is_public required, hidden/empty sections and private
    certifications filtered, owner fields stripped, feature flag → 503
"""

from __future__ import annotations

from typing import Any

import pytest
from httpx import AsyncClient

from app.config import Config

ALICE = "11111111-1111-4111-8111-111111111111"
BOB = "22222222-2222-4222-8222-222222222222"
MISSING_ID = "99999999-9999-4999-8999-999999999999"


def _as(user_id: str) -> dict[str, str]:
    return {"X-Test-User": user_id}


# ─── Helpers ──────────────────────────────────────────────────────────────────


async def _create_portfolio(client: AsyncClient, user: str = ALICE, **body: Any) -> dict[str, Any]:
    payload = {"title": "My Work", **body}
    response = await client.post("/api/v1/portfolios", json=payload, headers=_as(user))
    assert response.status_code == 201, response.text
    return response.json()["portfolio"]


async def _create_section(
    client: AsyncClient,
    portfolio_id: str,
    section_type: str = "custom",
    content: dict[str, Any] | None = None,
    user: str = ALICE,
    **extra: Any,
) -> dict[str, Any]:
    payload = {
        "portfolio_id": portfolio_id,
        "section_type": section_type,
        "content": content if content is not None else {"text": "hello"},
        **extra,
    }
    response = await client.post("/api/v1/portfolio-sections", json=payload, headers=_as(user))
    assert response.status_code == 201, response.text
    return response.json()["section"]


async def _orders(client: AsyncClient, portfolio_id: str) -> list[tuple[str, int]]:
    response = await client.get(f"/api/v1/portfolios/{portfolio_id}/sections", headers=_as(ALICE))
    return [(s["title"], s["display_order"]) for s in response.json()["sections"]]


# ─── Auth & ownership ─────────────────────────────────────────────────────────


class TestAuthAndOwnership:
    @pytest.mark.asyncio
    async def test_anonymous_is_401(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/portfolios")
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized", "code": "unauthorized"}

    @pytest.mark.asyncio
    async def test_session_endpoint(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/auth/session", headers=_as(ALICE))
        assert response.status_code == 200
        assert response.json() == {"user_id": ALICE}

    @pytest.mark.asyncio
    async def test_other_users_portfolio_is_404(self, client: AsyncClient) -> None:
        portfolio = await _create_portfolio(client)
        pid = portfolio["id"]

        for method, path in [
            ("GET", f"/api/v1/portfolios/{pid}"),
            ("GET", f"/api/v1/portfolios/{pid}/sections"),
            ("DELETE", f"/api/v1/portfolios/{pid}"),
            ("POST", f"/api/v1/portfolios/{pid}/public-link"),
        ]:
            response = await client.request(method, path, headers=_as(BOB))
            assert response.status_code == 404, (method, path)
            assert response.json()["code"] == "not_found"

        patched = await client.patch(f"/api/v1/portfolios/{pid}", json={"title": "x"}, headers=_as(BOB))
        assert patched.status_code == 404

    @pytest.mark.asyncio
    async def test_owner_comes_from_session_not_body(self, client: AsyncClient) -> None:
        portfolio = await _create_portfolio(client, user_id=BOB)
        assert portfolio["user_id"] == ALICE

    @pytest.mark.asyncio
    async def test_bad_id_is_400(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/portfolios/not-a-uuid", headers=_as(ALICE))
        assert response.status_code == 400
        assert response.json()["details"] == [{"path": "id", "message": "Invalid ID format"}]


# ─── Portfolio CRUD ───────────────────────────────────────────────────────────


class TestPortfolioCrud:
    @pytest.mark.asyncio
    async def test_defaults(self, client: AsyncClient) -> None:
        portfolio = await _create_portfolio(client)
        assert portfolio["slug"] == "my-work"
        assert portfolio["template"] == "modern-minimal"
        assert portfolio["theme"] == "light-blue"
        assert portfolio["is_public"] is False

    @pytest.mark.asyncio
    async def test_generated_slugs_get_suffixes(self, client: AsyncClient) -> None:
        slugs = [(await _create_portfolio(client))["slug"] for _ in range(3)]
        assert slugs == ["my-work", "my-work-2", "my-work-3"]

    @pytest.mark.asyncio
    async def test_slugs_are_per_user(self, client: AsyncClient) -> None:
        await _create_portfolio(client, user=ALICE)
        assert (await _create_portfolio(client, user=BOB))["slug"] == "my-work"

    @pytest.mark.asyncio
    async def test_explicit_slug_clash_is_409(self, client: AsyncClient) -> None:
        await _create_portfolio(client, slug="resume")
        response = await client.post(
            "/api/v1/portfolios", json={"title": "Other", "slug": "resume"}, headers=_as(ALICE)
        )
        assert response.status_code == 409
        assert response.json()["code"] == "slug_taken"

    @pytest.mark.asyncio
    async def test_update_slug_clash_is_409(self, client: AsyncClient) -> None:
        await _create_portfolio(client, slug="first")
        second = await _create_portfolio(client, slug="second")
        response = await client.patch(
            f"/api/v1/portfolios/{second['id']}", json={"slug": "first"}, headers=_as(ALICE)
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_missing_title_is_400(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/portfolios", json={}, headers=_as(ALICE))
        assert response.status_code == 400
        assert response.json()["details"][0]["path"] == "title"

    @pytest.mark.asyncio
    async def test_invalid_json_is_400(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/portfolios",
            content=b"{not json",
            headers={**_as(ALICE), "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_json"

    @pytest.mark.asyncio
    async def test_unknown_catalog_ids_are_400(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/portfolios",
            json={"title": "T", "template": "nope", "theme": "nada"},
            headers=_as(ALICE),
        )
        assert response.status_code == 400
        assert sorted(d["path"] for d in response.json()["details"]) == ["template", "theme"]

    @pytest.mark.asyncio
    async def test_template_and_theme_routes(self, client: AsyncClient) -> None:
        pid = (await _create_portfolio(client))["id"]

        template = await client.patch(
            f"/api/v1/portfolios/{pid}/template", json={"template": "timeline"}, headers=_as(ALICE)
        )
        theme = await client.patch(
            f"/api/v1/portfolios/{pid}/theme", json={"theme": "dark-slate"}, headers=_as(ALICE)
        )
        unknown = await client.patch(
            f"/api/v1/portfolios/{pid}/theme", json={"theme": "neon"}, headers=_as(ALICE)
        )

        assert template.json()["portfolio"]["template"] == "timeline"
        assert theme.json()["portfolio"]["theme"] == "dark-slate"
        assert unknown.status_code == 400

    @pytest.mark.asyncio
    async def test_update_rejects_immutable_and_empty(self, client: AsyncClient) -> None:
        pid = (await _create_portfolio(client))["id"]

        immutable = await client.patch(
            f"/api/v1/portfolios/{pid}", json={"user_id": BOB}, headers=_as(ALICE)
        )
        empty = await client.patch(f"/api/v1/portfolios/{pid}", json={}, headers=_as(ALICE))

        assert immutable.status_code == 400
        assert immutable.json()["details"][0]["path"] == "user_id"
        assert empty.status_code == 400
        assert empty.json()["code"] == "no_fields"

    @pytest.mark.asyncio
    async def test_list_filters_and_pages(self, client: AsyncClient) -> None:
        await _create_portfolio(client, title="Private")
        await _create_portfolio(client, title="Public", is_public=True)
        await _create_portfolio(client, user=BOB, title="Bob's")

        everything = await client.get("/api/v1/portfolios", headers=_as(ALICE))
        public = await client.get("/api/v1/portfolios?is_public=true", headers=_as(ALICE))
        page = await client.get("/api/v1/portfolios?limit=1&offset=1", headers=_as(ALICE))
        bad = await client.get("/api/v1/portfolios?limit=500", headers=_as(ALICE))

        assert {p["title"] for p in everything.json()["portfolios"]} == {"Private", "Public"}
        assert [p["title"] for p in public.json()["portfolios"]] == ["Public"]
        assert len(page.json()["portfolios"]) == 1
        assert bad.status_code == 400

    @pytest.mark.asyncio
    async def test_soft_delete_hides_portfolio(self, client: AsyncClient) -> None:
        pid = (await _create_portfolio(client))["id"]

        deleted = await client.delete(f"/api/v1/portfolios/{pid}", headers=_as(ALICE))
        again = await client.get(f"/api/v1/portfolios/{pid}", headers=_as(ALICE))
        listed = await client.get("/api/v1/portfolios", headers=_as(ALICE))

        assert deleted.json() == {"success": True}
        assert again.status_code == 404
        assert listed.json()["portfolios"] == []


# ─── Sections ─────────────────────────────────────────────────────────────────


class TestSections:
    @pytest.mark.asyncio
    async def test_append_and_detail(self, client: AsyncClient) -> None:
        pid = (await _create_portfolio(client))["id"]
        for title in ("A", "B", "C"):
            await _create_section(client, pid, title=title)

        detail = await client.get(f"/api/v1/portfolios/{pid}", headers=_as(ALICE))
        sections = detail.json()["portfolio"]["sections"]
        assert [(s["title"], s["display_order"]) for s in sections] == [("A", 1), ("B", 2), ("C", 3)]

    @pytest.mark.asyncio
    async def test_content_is_validated_for_type(self, client: AsyncClient) -> None:
        pid = (await _create_portfolio(client))["id"]
        response = await client.post(
            "/api/v1/portfolio-sections",
            json={"portfolio_id": pid, "section_type": "skills", "content": {"skills": "python"}},
            headers=_as(ALICE),
        )
        assert response.status_code == 400
        assert all(d["path"].startswith("content") for d in response.json()["details"])

    @pytest.mark.asyncio
    async def test_work_experience_aliases(self, client: AsyncClient) -> None:
        pid = (await _create_portfolio(client))["id"]
        section = await _create_section(
            client,
            pid,
            "work_experience",
            {"jobs": [{"role": "Engineer", "company": "Acme", "startDate": "2020-01"}]},
        )
        assert section["content"]["jobs"][0]["startDate"] == "2020-01"
        assert section["content"]["description"] == ""

    @pytest.mark.asyncio
    async def test_section_on_foreign_portfolio_is_404(self, client: AsyncClient) -> None:
        pid = (await _create_portfolio(client))["id"]
        response = await client.post(
            "/api/v1/portfolio-sections",
            json={"portfolio_id": pid, "section_type": "custom"},
            headers=_as(BOB),
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_update_section(self, client: AsyncClient) -> None:
        pid = (await _create_portfolio(client))["id"]
        section = await _create_section(client, pid, "summary", {"text": "old"})

        updated = await client.patch(
            f"/api/v1/portfolio-sections/{section['id']}",
            json={"content": {"text": "new"}, "is_visible": False},
            headers=_as(ALICE),
        )
        immutable = await client.patch(
            f"/api/v1/portfolio-sections/{section['id']}",
            json={"display_order": 5},
            headers=_as(ALICE),
        )
        foreign = await client.patch(
            f"/api/v1/portfolio-sections/{section['id']}",
            json={"title": "mine now"},
            headers=_as(BOB),
        )

        assert updated.status_code == 200
        assert updated.json()["section"]["content"] == {"text": "new"}
        assert updated.json()["section"]["is_visible"] is False
        assert immutable.status_code == 400
        assert foreign.status_code == 404

    @pytest.mark.asyncio
    async def test_reorder(self, client: AsyncClient) -> None:
        pid = (await _create_portfolio(client))["id"]
        a, b, c = [await _create_section(client, pid, title=t) for t in "ABC"]

        response = await client.patch(
            "/api/v1/portfolio-sections/reorder",
            json={"portfolio_id": pid, "section_ids": [c["id"], a["id"], b["id"]]},
            headers=_as(ALICE),
        )
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert await _orders(client, pid) == [("C", 1), ("A", 2), ("B", 3)]

    @pytest.mark.asyncio
    async def test_reorder_with_wrong_set_changes_nothing(self, client: AsyncClient) -> None:
        pid = (await _create_portfolio(client))["id"]
        a, b, _ = [await _create_section(client, pid, title=t) for t in "ABC"]

        response = await client.patch(
            "/api/v1/portfolio-sections/reorder",
            json={"portfolio_id": pid, "section_ids": [b["id"], a["id"], MISSING_ID]},
            headers=_as(ALICE),
        )
        assert response.status_code == 400
        assert await _orders(client, pid) == [("A", 1), ("B", 2), ("C", 3)]

    @pytest.mark.asyncio
    async def test_delete_compacts_and_is_idempotent(self, client: AsyncClient) -> None:
        pid = (await _create_portfolio(client))["id"]
        sections = [await _create_section(client, pid, title=t) for t in "ABCD"]
        path = f"/api/v1/portfolio-sections/{sections[1]['id']}"

        first = await client.delete(path, headers=_as(ALICE))
        second = await client.delete(path, headers=_as(ALICE))

        assert first.json() == {"success": True, "deleted": True}
        assert second.status_code == 200
        assert second.json() == {"success": True, "deleted": False}
        assert await _orders(client, pid) == [("A", 1), ("C", 2), ("D", 3)]

    @pytest.mark.asyncio
    async def test_foreign_delete_is_a_no_op(self, client: AsyncClient) -> None:
        pid = (await _create_portfolio(client))["id"]
        section = await _create_section(client, pid, title="A")

        response = await client.delete(f"/api/v1/portfolio-sections/{section['id']}", headers=_as(BOB))
        assert response.json()["deleted"] is False
        assert await _orders(client, pid) == [("A", 1)]


# ─── Public view ──────────────────────────────────────────────────────────────


class TestPublicView:
    async def _share(self, client: AsyncClient, portfolio_id: str) -> str:
        response = await client.post(f"/api/v1/portfolios/{portfolio_id}/public-link", headers=_as(ALICE))
        assert response.status_code == 200
        body = response.json()
        token = body["portfolio"]["public_link_token"]
        assert body["public_url"] == f"/p/{token}"
        return token

    @pytest.mark.asyncio
    async def test_public_view_filters_sections(self, client: AsyncClient) -> None:
        pid = (await _create_portfolio(client, is_public=True, theme="dark-slate"))["id"]
        await _create_section(client, pid, "summary", {"text": "Hello"}, title="About")
        await _create_section(client, pid, "summary", {"text": "secret"}, title="Hidden", is_visible=False)
        await _create_section(client, pid, "skills", {"skills": []}, title="Empty")
        token = await self._share(client, pid)

        response = await client.get(f"/api/v1/public/portfolios/{token}")
        body = response.json()

        assert response.status_code == 200
        assert [s["title"] for s in body["sections"]] == ["About"]
        assert "user_id" not in body["portfolio"]
        assert "public_link_token" not in body["portfolio"]
        assert body["theme"]["id"] == "dark-slate"
        assert body["template"]["id"] == "modern-minimal"

    @pytest.mark.asyncio
    async def test_private_certifications_are_dropped(self, client: AsyncClient) -> None:
        pid = (await _create_portfolio(client, is_public=True))["id"]
        shown = await client.post(
            "/api/v1/certifications",
            json={"title": "CKA", "issuing_organization": "CNCF", "certification_type": "manual"},
            headers=_as(ALICE),
        )
        hidden = await client.post(
            "/api/v1/certifications",
            json={
                "title": "Secret",
                "issuing_organization": "Org",
                "certification_type": "manual",
                "is_public": False,
            },
            headers=_as(ALICE),
        )
        await _create_section(
            client,
            pid,
            "certifications",
            {
                "certifications": [
                    {"id": shown.json()["data"]["id"], "title": "stale"},
                    {"id": hidden.json()["data"]["id"], "title": "Secret"},
                    {"title": "Free text cert"},
                ]
            },
        )
        token = await self._share(client, pid)

        body = (await client.get(f"/api/v1/public/portfolios/{token}")).json()
        entries = body["sections"][0]["content"]["certifications"]
        assert [e["title"] for e in entries] == ["CKA", "Free text cert"]
        assert entries[0]["issuer"] == "CNCF"

    @pytest.mark.asyncio
    async def test_not_public_or_revoked_is_404(self, client: AsyncClient) -> None:
        pid = (await _create_portfolio(client))["id"]
        token = await self._share(client, pid)
        assert (await client.get(f"/api/v1/public/portfolios/{token}")).status_code == 404

        await client.patch(f"/api/v1/portfolios/{pid}", json={"is_public": True}, headers=_as(ALICE))
        assert (await client.get(f"/api/v1/public/portfolios/{token}")).status_code == 200

        await client.delete(f"/api/v1/portfolios/{pid}/public-link", headers=_as(ALICE))
        assert (await client.get(f"/api/v1/public/portfolios/{token}")).status_code == 404

    @pytest.mark.asyncio
    async def test_deleted_portfolio_is_404(self, client: AsyncClient) -> None:
        pid = (await _create_portfolio(client, is_public=True))["id"]
        token = await self._share(client, pid)
        await client.delete(f"/api/v1/portfolios/{pid}", headers=_as(ALICE))
        assert (await client.get(f"/api/v1/public/portfolios/{token}")).status_code == 404

    @pytest.mark.asyncio
    async def test_new_link_replaces_old(self, client: AsyncClient) -> None:
        pid = (await _create_portfolio(client, is_public=True))["id"]
        old = await self._share(client, pid)
        new = await self._share(client, pid)
        assert old != new
        assert (await client.get(f"/api/v1/public/portfolios/{old}")).status_code == 404
        assert (await client.get(f"/api/v1/public/portfolios/{new}")).status_code == 200

    @pytest.mark.asyncio
    async def test_malformed_token_is_400(self, client: AsyncClient) -> None:
        assert (await client.get("/api/v1/public/portfolios/short")).status_code == 400

    @pytest.mark.asyncio
    async def test_feature_flag_off_is_503(self, client: AsyncClient, config: Config) -> None:
        config.features.public_portfolios = False
        response = await client.get("/api/v1/public/portfolios/abcdefghijkl")
        assert response.status_code == 503
        assert response.json()["code"] == "feature_disabled"
