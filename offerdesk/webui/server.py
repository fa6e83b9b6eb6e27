"""offerdesk Web UI – aiohttp server.

Launch:
    python -m offerdesk.webui
    python -m offerdesk.webui --port 8765 --host 0.0.0.0
"""
from __future__ import annotations

import argparse
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from aiohttp import web

from offerdesk.adapters.listing_api import ListingApiClient, ListingApiError, resolve_listing_client
from offerdesk.config.io import ConfigError, load_program_config
from offerdesk.config.models import ProgramConfig
from offerdesk.core.acceptance import (
    AcceptanceError,
    AcceptanceNotOpenError,
    OfferAcceptanceController,
)
from offerdesk.core.card import OfferFilters, action_label, board_stats, render_offer_card
from offerdesk.core.conversion import plain_number
from offerdesk.core.new_offer import EXPIRY_HOURS_CHOICES, OfferDraftError, offer_draft_from_form, validate_offer_draft
from offerdesk.webui.board_loop import BoardLoop

logger = logging.getLogger("offerdesk.webui")


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------

async def _json_body(request: web.Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _board(request: web.Request) -> BoardLoop:
    return request.app["board_loop"]


def _controller(request: web.Request, offer_id: str) -> OfferAcceptanceController | None:
    """Controller for *offer_id*; ``None`` until the card has been opened once."""
    return request.app["acceptances"].get(offer_id)


def _opened_controller(request: web.Request, offer_id: str) -> OfferAcceptanceController:
    controllers: dict[str, OfferAcceptanceController] = request.app["acceptances"]
    controller = controllers.get(offer_id)
    if controller is None:
        controller = OfferAcceptanceController(on_accept=_board(request).dispatch_acceptance)
        controllers[offer_id] = controller
    return controller


def _prune_acceptances(app: web.Application) -> None:
    """Forget closed controllers whose offer is no longer on the board."""
    board: BoardLoop = app["board_loop"]
    controllers: dict[str, OfferAcceptanceController] = app["acceptances"]
    stale = [oid for oid, c in controllers.items() if not c.is_open and board.offer(oid) is None]
    for offer_id in stale:
        del controllers[offer_id]


def _no_acceptance(offer_id: str) -> web.Response:
    return web.json_response({"ok": False, "error": "acceptance_not_found", "offer_id": offer_id}, status=404)


def _acceptance_view(
    request: web.Request,
    offer_id: str,
    controller: OfferAcceptanceController,
) -> dict[str, Any]:
    now = request.app["clock"]()
    method_name = _board(request).method_name_for
    draft = controller.draft
    if draft is None:
        return {"offer_id": offer_id, "open": False}
    offer = draft.offer
    return {
        "offer_id": offer_id,
        "open": True,
        "title": action_label(offer.side),
        "amount": draft.amount_text,
        "method": draft.method,
        "methods": [{"id": m, "name": method_name(m)} for m in offer.payment_methods],
        "fiat_currency": offer.fiat_currency,
        "limits": {"min": plain_number(offer.min_limit), "max": plain_number(offer.max_limit)},
        "expiry_label": controller.expiry_label(now),
        "preview": controller.preview().to_dict(),
    }


def _toast(level: str, message: str) -> dict[str, str]:
    return {"level": level, "message": message}


# ---------------------------------------------------------------------------
# Board handlers
# ---------------------------------------------------------------------------

async def handle_index(request: web.Request) -> web.Response:
    return web.Response(text=_HTML, content_type="text/html")


async def handle_offers(request: web.Request) -> web.Response:
    board = _board(request)
    config: ProgramConfig = request.app["config"]
    filters = OfferFilters.from_query(dict(request.rel_url.query), default_fiat=config.default_fiat)
    if filters != board.filters or board.status()["refresh_count"] == 0:
        result = await board.refresh(filters)
        if result["status"] != "ok":
            return web.json_response(
                {"ok": False, "error": result.get("error"), "toast": _toast("error", "Failed to load offers")},
                status=502,
            )
        _prune_acceptances(request.app)
    now = request.app["clock"]()
    offers = board.offers()
    return web.json_response({
        "ok": True,
        "filters": board.filters.to_query_params(),
        "filters_active": board.filters.is_active(),
        "stats": board_stats(offers),
        "offers": [render_offer_card(o, now, board.icon_for, board.method_name_for) for o in offers],
    })


async def handle_create_offer(request: web.Request) -> web.Response:
    body = await _json_body(request)
    draft = offer_draft_from_form(body)
    try:
        payload = validate_offer_draft(draft, request.app["clock"]())
    except OfferDraftError as exc:
        return web.json_response({"ok": False, **exc.to_dict(), "toast": _toast("error", str(exc))}, status=400)

    board = _board(request)
    try:
        created = await request.app["listing_client"].create_offer(payload)
    except ListingApiError as exc:
        logger.warning("create_offer rejected status=%s error=%s", exc.status, exc.message())
        return web.json_response(
            {"ok": False, **exc.to_dict(), "toast": _toast("error", exc.message() or "Failed to create offer")},
            status=502,
        )
    await board.refresh()
    return web.json_response({
        "ok": True,
        "offer": created,
        "toast": _toast("success", "Offer created successfully!"),
    })


async def handle_payment_methods(request: web.Request) -> web.Response:
    return web.json_response({
        "ok": True,
        "payment_methods": _board(request).payment_methods(),
        "expiry_hours": list(EXPIRY_HOURS_CHOICES),
    })


async def handle_board_status(request: web.Request) -> web.Response:
    return web.json_response(_board(request).status())


async def handle_board_refresh(request: web.Request) -> web.Response:
    result = await _board(request).trigger_once()
    if result["status"] == "ok":
        _prune_acceptances(request.app)
    return web.json_response({"ok": result["status"] == "ok", "result": result})


# ---------------------------------------------------------------------------
# Acceptance handlers
# ---------------------------------------------------------------------------

async def handle_acceptance_get(request: web.Request) -> web.Response:
    offer_id = request.match_info["offer_id"]
    controller = _controller(request, offer_id)
    if controller is None:
        return _no_acceptance(offer_id)
    return web.json_response({"ok": True, **_acceptance_view(request, offer_id, controller)})


async def handle_acceptance_open(request: web.Request) -> web.Response:
    offer_id = request.match_info["offer_id"]
    offer = _board(request).offer(offer_id)
    if offer is None:
        return web.json_response({"ok": False, "error": "offer_not_found"}, status=404)
    _prune_acceptances(request.app)
    controller = _opened_controller(request, offer_id)
    controller.open(offer)
    return web.json_response({"ok": True, **_acceptance_view(request, offer_id, controller)})


async def handle_acceptance_amount(request: web.Request) -> web.Response:
    offer_id = request.match_info["offer_id"]
    controller = _controller(request, offer_id)
    if controller is None:
        return _no_acceptance(offer_id)
    body = await _json_body(request)
    raw = body.get("amount")
    try:
        controller.update_amount("" if raw is None else str(raw))
    except AcceptanceNotOpenError as exc:
        return web.json_response({"ok": False, "error": str(exc)}, status=409)
    return web.json_response({"ok": True, **_acceptance_view(request, offer_id, controller)})


async def handle_acceptance_method(request: web.Request) -> web.Response:
    offer_id = request.match_info["offer_id"]
    controller = _controller(request, offer_id)
    if controller is None:
        return _no_acceptance(offer_id)
    body = await _json_body(request)
    try:
        controller.update_method(str(body.get("method", "")))
    except AcceptanceNotOpenError as exc:
        return web.json_response({"ok": False, "error": str(exc)}, status=409)
    return web.json_response({"ok": True, **_acceptance_view(request, offer_id, controller)})


async def handle_acceptance_submit(request: web.Request) -> web.Response:
    offer_id = request.match_info["offer_id"]
    controller = _controller(request, offer_id)
    if controller is None:
        return _no_acceptance(offer_id)
    try:
        intent = controller.submit()
    except AcceptanceNotOpenError as exc:
        return web.json_response({"ok": False, "error": str(exc)}, status=409)
    except AcceptanceError as exc:
        return web.json_response(
            {
                "ok": False,
                **exc.to_dict(),
                "toast": _toast("error", str(exc)),
                "acceptance": _acceptance_view(request, offer_id, controller),
            },
            status=400,
        )
    return web.json_response({
        "ok": True,
        "intent": intent.to_dict(),
        "toast": _toast("success", "Trade request sent"),
    })


async def handle_acceptance_cancel(request: web.Request) -> web.Response:
    offer_id = request.match_info["offer_id"]
    controller = _controller(request, offer_id)
    if controller is None:
        return _no_acceptance(offer_id)
    controller.cancel()
    return web.json_response({"ok": True, "offer_id": offer_id, "open": False})


# ---------------------------------------------------------------------------
# ---------------------------------------------------------------------------

async def _on_startup(app: web.Application) -> None:
    if app["auto_refresh"]:
        app["board_loop"].start()


async def _on_cleanup(app: web.Application) -> None:
    board: BoardLoop = app["board_loop"]
    board.stop()
    await board.drain()
    await app["listing_client"].close()


def create_app(
    config: ProgramConfig | None = None,
    *,
    client: ListingApiClient | None = None,
    clock: Callable[[], datetime] = _utcnow,
    auto_refresh: bool = True,
) -> web.Application:
    config = config or load_program_config()
    client = client or resolve_listing_client(config)
    board_loop = BoardLoop(
        client,
        refresh_interval_seconds=config.refresh_interval_seconds,
        filters=OfferFilters(fiat_currency=config.default_fiat),
    )

    app = web.Application()
    app["config"] = config
    app["listing_client"] = client
    app["board_loop"] = board_loop
    app["acceptances"] = {}
    app["clock"] = clock
    app["auto_refresh"] = auto_refresh
    app.on_startup.append(_on_startup)
    app.on_cleanup.append(_on_cleanup)

    app.router.add_get("/", handle_index)
    app.router.add_get("/api/offers", handle_offers)
    app.router.add_post("/api/offers", handle_create_offer)
    app.router.add_get("/api/payment-methods", handle_payment_methods)
    app.router.add_get("/api/board/status", handle_board_status)
    app.router.add_post("/api/board/refresh", handle_board_refresh)
    app.router.add_get("/api/acceptance/{offer_id}", handle_acceptance_get)
    app.router.add_post("/api/acceptance/{offer_id}/open", handle_acceptance_open)
    app.router.add_post("/api/acceptance/{offer_id}/amount", handle_acceptance_amount)
    app.router.add_post("/api/acceptance/{offer_id}/method", handle_acceptance_method)
    app.router.add_post("/api/acceptance/{offer_id}/submit", handle_acceptance_submit)
    app.router.add_post("/api/acceptance/{offer_id}/cancel", handle_acceptance_cancel)
    return app


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    parser = argparse.ArgumentParser(description="offerdesk Web UI")
    parser.add_argument("--program-config", default=None)
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()

    try:
        config = load_program_config(Path(args.program_config) if args.program_config else None)
    except ConfigError as exc:
        parser.error(str(exc))

    level = (args.log_level or config.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    host = args.host or config.webui_host
    port = args.port or config.webui_port
    app = create_app(config)
    print(f"offerdesk Web UI -> http://{host}:{port}", flush=True)
    web.run_app(app, host=host, port=port, print=None, handle_signals=True)


# ---------------------------------------------------------------------------
# Embedded HTML/JS frontend
# ---------------------------------------------------------------------------

_HTML = r"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>offerdesk – P2P offers</title>
<style>
  body { background: #09090b; color: #e4e4e7; font-family: system-ui, sans-serif; margin: 2rem; }
  .grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(320px, 1fr)); gap: 1rem; }
  .card { background: #18181b; border: 1px solid #27272a; border-radius: 1rem; padding: 1rem; }
  .buy { color: #4ade80; } .sell { color: #f87171; }
  .muted { color: #a1a1aa; font-size: .85rem; }
  button { border: 0; border-radius: .75rem; padding: .6rem 1rem; font-weight: bold; cursor: pointer; }
  .modal { position: fixed; inset: 0; background: #000a; display: none; align-items: center; justify-content: center; }
  .modal .card { width: 380px; max-height: 90vh; overflow-y: auto; }
  #toast { position: fixed; bottom: 1rem; right: 1rem; padding: .75rem 1rem; border-radius: .75rem; display: none; }
  input, select, textarea { width: 100%; padding: .5rem; background: #27272a; color: #fff; border: 1px solid #3f3f46; border-radius: .5rem; }
  .check { display: flex; gap: .5rem; align-items: center; }
  .check input { width: auto; }
</style>
</head>
<body>
<h1>P2P Trading</h1>
<button id="create-open">Create Offer</button>
<div id="stats" class="muted"></div>
<div id="offers" class="grid"></div>
<div id="modal" class="modal"><div class="card">
  <h3 id="m-title"></h3>
  <div class="muted" id="m-expiry"></div>
  <label>Amount (<span id="m-fiat"></span>)</label>
  <input id="m-amount" type="number" step="0.01">
  <div class="muted" id="m-limits"></div>
  <label>Payment Method</label>
  <select id="m-method"></select>
  <p><span class="muted" id="m-phrase"></span> <b id="m-crypto"></b><br><span class="muted" id="m-fiat-restated"></span></p>
  <button id="m-cancel">Cancel</button>
  <button id="m-submit">Confirm Trade</button>
</div></div>
<div id="create" class="modal"><div class="card">
  <h3>Create P2P Offer</h3>
  <select id="c-type"><option value="sell">Sell Cryptocurrency</option><option value="buy">Buy Cryptocurrency</option></select>
  <label>Cryptocurrency</label><input id="c-crypto" value="BTC">
  <label>Fiat Currency</label><input id="c-fiat" value="USD">
  <label>Amount</label><input id="c-amount" type="number" step="0.00000001">
  <label>Price</label><input id="c-price" type="number" step="0.01">
  <label>Minimum Trade Amount</label><input id="c-min" type="number" step="0.01">
  <label>Maximum Trade Amount</label><input id="c-max" type="number" step="0.01">
  <label>Accepted Payment Methods</label><div id="c-methods"></div>
  <label>Terms & Conditions (Optional)</label><textarea id="c-terms" rows="3"></textarea>
  <label>Offer Expires In</label><select id="c-expiry"></select>
  <button id="c-cancel">Cancel</button>
  <button id="c-submit">Create Offer</button>
</div></div>
<div id="toast"></div>
<script>
let current = null;
const $ = id => document.getElementById(id);
function escHtml(s) {
  return String(s).replace(/&/g,'&amp;').replace(/</g,'&lt;').replace(/>/g,'&gt;')
    .replace(/"/g,'&quot;').replace(/'/g,'&#39;');
}
function acceptancePath(id, action) {
  return `/api/acceptance/${encodeURIComponent(id)}` + (action ? `/${action}` : "");
}
async function api(path, body) {
  const opts = body === undefined ? {} : {method: "POST", headers: {"Content-Type": "application/json"}, body: JSON.stringify(body)};
  const r = await fetch(path, opts);
  return r.json();
}
function toast(t) {
  const el = $("toast");
  el.textContent = t.message;
  el.style.background = t.level === "error" ? "#7f1d1d" : "#14532d";
  el.style.display = "block";
  setTimeout(() => { el.style.display = "none"; }, 4000);
}
async function loadOffers() {
  const data = await api("/api/offers" + location.search);
  if (!data.ok) { if (data.toast) toast(data.toast); return; }
  const s = data.stats;
  $("stats").textContent =
    `Buy offers: ${s.buy_offers} · Sell offers: ${s.sell_offers} · Volume: ${s.total_volume_display} · Traders: ${s.active_traders}`;
  $("offers").innerHTML = data.offers.map(o => `
    <div class="card">
      <div><b class="${o.side === "buy" ? "buy" : "sell"}">${escHtml(o.badge)}</b> ${escHtml(o.icon)} <b>${escHtml(o.pair)}</b> <span class="muted">${escHtml(o.expiry_label)}</span></div>
      <h2>${escHtml(o.price)} <span class="muted">${escHtml(o.price_unit)}</span></h2>
      <div class="muted">Available: ${escHtml(o.available)}</div>
      <div class="muted">Limits: ${escHtml(o.limits)}</div>
      <div class="muted">${o.payment_methods.map(escHtml).join(", ")} ${escHtml(o.more_methods || "")}</div>
      <div>${escHtml(o.counterparty)} <span class="muted">ID: ${escHtml(o.counterparty_short_id)}</span> ${o.rating ? "★ " + escHtml(o.rating) : ""}</div>
      <button class="accept" data-offer-id="${escHtml(o.offer_id)}">${escHtml(o.action)}</button>
    </div>`).join("");
  document.querySelectorAll("#offers button.accept").forEach(b =>
    b.addEventListener("click", () => openAccept(b.dataset.offerId)));
}
function renderAcceptance(a) {
  $("m-title").textContent = a.title;
  $("m-expiry").textContent = a.expiry_label;
  $("m-fiat").textContent = a.fiat_currency;
  $("m-limits").textContent = `Limits: ${a.limits.min} - ${a.limits.max}`;
  $("m-phrase").textContent = a.preview.phrase + ":";
  $("m-crypto").textContent = `${a.preview.crypto_amount} ${a.preview.crypto_symbol}`;
  $("m-fiat-restated").textContent = "≈ " + a.preview.fiat_amount;
}
async function openAccept(id) {
  const a = await api(acceptancePath(id, "open"), {});
  if (!a.ok) return;
  current = id;
  $("m-amount").value = a.amount;
  $("m-method").innerHTML = a.methods.map(m =>
    `<option value="${escHtml(m.id)}" ${m.id === a.method ? "selected" : ""}>${escHtml(m.name)}</option>`).join("");
  renderAcceptance(a);
  $("modal").style.display = "flex";
}
$("m-amount").addEventListener("input", async e => {
  const a = await api(acceptancePath(current, "amount"), {amount: e.target.value});
  if (a.ok) renderAcceptance(a);
});
$("m-method").addEventListener("change", async e => {
  await api(acceptancePath(current, "method"), {method: e.target.value});
});
$("m-cancel").addEventListener("click", async () => {
  await api(acceptancePath(current, "cancel"), {});
  $("modal").style.display = "none";
});
$("m-submit").addEventListener("click", async () => {
  const r = await api(acceptancePath(current, "submit"), {});
  toast(r.toast);
  if (r.ok) { $("modal").style.display = "none"; setTimeout(loadOffers, 1500); }
});
$("create-open").addEventListener("click", async () => {
  const ref = await api("/api/payment-methods");
  $("c-methods").innerHTML = ref.payment_methods.map(m =>
    `<label class="check"><input type="checkbox" value="${escHtml(m.id)}">${escHtml(m.name || m.id)}</label>`).join("");
  $("c-expiry").innerHTML = ref.expiry_hours.map(h =>
    `<option value="${h}" ${h === 24 ? "selected" : ""}>${h} hour${h === 1 ? "" : "s"}</option>`).join("");
  $("create").style.display = "flex";
});
$("c-cancel").addEventListener("click", () => { $("create").style.display = "none"; });
$("c-submit").addEventListener("click", async () => {
  const r = await api("/api/offers", {
    type: $("c-type").value,
    cryptocurrency: $("c-crypto").value,
    fiatCurrency: $("c-fiat").value,
    amount: $("c-amount").value,
    price: $("c-price").value,
    minLimit: $("c-min").value,
    maxLimit: $("c-max").value,
    paymentMethods: [...document.querySelectorAll("#c-methods input:checked")].map(i => i.value),
    terms: $("c-terms").value,
    expiresInHours: $("c-expiry").value,
  });
  toast(r.toast);
  if (r.ok) { $("create").style.display = "none"; loadOffers(); }
});
loadOffers();
setInterval(loadOffers, 30000);
</script>
</body>
</html>
"""
