# supportpilot/backend/app/main.py
import logging
from html import escape
from typing import Dict, List, Optional, Tuple

import httpx
from fastapi import Depends, FastAPI, Form, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, RedirectResponse

from .ai.client import GenerationRegistry, GenerationState
from .api.v1.ai import router as ai_router
from .api.v1.tickets import router as tickets_router
from .config import (
    AI_GATEWAY_URL,
    LOG_LEVEL,
    OPENAI_MODEL,
    OPENAI_TIMEOUT,
    STORAGE_KEY,
)
from .db import init_db
from .deps import get_generations, get_store
from .query.filters import (
    ACTIVE,
    ALL,
    CATEGORY_FILTERS,
    DEFAULT_FILTERS,
    PAGE_SIZES,
    PRIORITY_FILTERS,
    SORT_LABELS,
    STATUS_FILTERS,
    AnsweredFilter,
    SortOrder,
    TicketFilters,
    derive_ticket_view,
    update_filters,
)
from .query.selection import TicketSelection
from .query.url_state import PARAM_FIELDS, active_filters, decode_filters, to_query_string
from .schemas.ticket import (
    ALLOWED_CATEGORIES,
    ALLOWED_CHANNELS,
    ALLOWED_PRIORITIES,
    ALLOWED_STATUSES,
    Ticket,
    TicketCreate,
    TicketEnvironment,
    TicketStatus,
)
from .store.repository import TicketRepository, detect_environment
from .store.tickets_store import TicketsStore

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="SupportPilot")

app.include_router(tickets_router, prefix="/api/v1")
app.include_router(ai_router, prefix="/api")


def gateway_client() -> httpx.AsyncClient:
    """HTTP client for the analysis gateway: remote when configured, else this app in-process."""
    timeout = OPENAI_TIMEOUT + 10
    if AI_GATEWAY_URL:
        return httpx.AsyncClient(base_url=AI_GATEWAY_URL, timeout=timeout)
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://supportpilot.local",
        timeout=timeout,
    )


# One store and one set of AI generations per application
app.state.tickets_store = TicketsStore(TicketRepository())
app.state.generations = GenerationRegistry(gateway_client)


@app.on_event("startup")
def prepare_storage():
    init_db()
    app.state.tickets_store.hydrate()


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/")
async def root_redirect():
    return RedirectResponse(url="/app", status_code=302)


# Layout

STYLES = """
  * { box-sizing: border-box; }
  body {
    margin: 0;
    font-family: system-ui, -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
    background: #f8fafc;
    color: #0f172a;
  }
  a { color: #0369a1; text-decoration: none; }
  a:hover { text-decoration: underline; }
  .nav {
    display: flex;
    justify-content: space-between;
    align-items: center;
    padding: 14px 32px;
    background: #ffffff;
    border-bottom: 1px solid #e2e8f0;
  }
  .brand { font-weight: 700; font-size: 16px; color: #0f172a; }
  .nav-links a { margin-left: 18px; font-size: 14px; color: #475569; }
  .nav-links a.active { color: #0f172a; font-weight: 600; }
  .page { max-width: 1100px; margin: 28px auto 40px; padding: 0 24px; }
  .page-header { display: flex; justify-content: space-between; align-items: baseline; margin-bottom: 16px; }
  .page-header h1 { margin: 0; font-size: 24px; }
  .page-header .meta { font-size: 13px; color: #64748b; }
  .card {
    background: #ffffff;
    border: 1px solid #e2e8f0;
    border-radius: 12px;
    padding: 18px 20px;
    margin-bottom: 18px;
  }
  .section-title {
    font-size: 12px;
    text-transform: uppercase;
    letter-spacing: 0.08em;
    color: #64748b;
    margin: 14px 0 8px;
  }
  .grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(160px, 1fr)); gap: 12px 16px; }
  label { display: block; font-size: 12px; color: #475569; margin-bottom: 4px; }
  input[type="text"], input[type="search"], select, textarea {
    width: 100%;
    border: 1px solid #cbd5e1;
    border-radius: 8px;
    padding: 7px 10px;
    font-size: 14px;
    background: #ffffff;
  }
  textarea { min-height: 110px; }
  button, .btn {
    display: inline-block;
    padding: 7px 14px;
    border-radius: 8px;
    border: 1px solid #0f172a;
    background: #0f172a;
    color: #ffffff;
    font-size: 13px;
    font-weight: 600;
    cursor: pointer;
  }
  button.secondary, .btn.secondary { background: #ffffff; color: #0f172a; }
  button.danger { background: #be123c; border-color: #be123c; }
  button:disabled { opacity: 0.5; cursor: not-allowed; }
  table { width: 100%; border-collapse: collapse; font-size: 14px; }
  th, td { padding: 9px 10px; border-bottom: 1px solid #e2e8f0; text-align: left; vertical-align: top; }
  th { font-size: 12px; text-transform: uppercase; letter-spacing: 0.06em; color: #64748b; }
  .muted { color: #64748b; font-size: 13px; }
  .error { color: #be123c; font-size: 12px; margin-top: 4px; }
  .alert { border: 1px solid #fecdd3; background: #fff1f2; color: #9f1239; border-radius: 10px; padding: 12px 14px; margin-bottom: 12px; }
  .pill {
    display: inline-block;
    padding: 2px 9px;
    border-radius: 999px;
    font-size: 12px;
    border: 1px solid #cbd5e1;
    background: #f1f5f9;
    white-space: nowrap;
  }
  .pill.info { background: #e0f2fe; border-color: #7dd3fc; }
  .pill.warning { background: #fef3c7; border-color: #fcd34d; }
  .pill.success { background: #dcfce7; border-color: #86efac; }
  .chips a { margin-right: 8px; }
  .pagination { display: flex; justify-content: space-between; align-items: center; margin-top: 12px; font-size: 13px; }
  .pagination a { margin-left: 10px; }
  pre { white-space: pre-wrap; font-family: inherit; font-size: 14px; margin: 0; }
  .inline-form { display: inline; }
  .stats { display: grid; grid-template-columns: repeat(auto-fit, minmax(150px, 1fr)); gap: 12px; }
  .stat { font-size: 26px; font-weight: 700; }
"""

NAV_ITEMS = [
    ("Dashboard", "/app"),
    ("Tickets", "/app/tickets"),
    ("New Ticket", "/app/tickets/new"),
    ("Settings", "/app/settings"),
]

STATUS_VARIANTS = {
    TicketStatus.OPEN: "info",
    TicketStatus.IN_PROGRESS: "warning",
    TicketStatus.RESOLVED: "success",
}

PRIORITY_VARIANTS = {
    "Low": "",
    "Medium": "info",
    "High": "warning",
    "Urgent": "warning",
}


def render_page(title: str, body: str, active: str = "", status_code: int = 200) -> HTMLResponse:
    links = "".join(
        f"<a href='{href}' class='{'active' if href == active else ''}'>{label}</a>"
        for label, href in NAV_ITEMS
    )
    return HTMLResponse(
        content=f"""
    <!DOCTYPE html>
    <html lang="en">
      <head>
        <meta charset="utf-8" />
        <title>{escape(title)} · SupportPilot</title>
        <style>{STYLES}</style>
      </head>
      <body>
        <header class="nav">
          <a class="brand" href="/app">SupportPilot</a>
          <nav class="nav-links">{links}</nav>
        </header>
        <main class="page">
          {body}
        </main>
      </body>
    </html>
    """,
        status_code=status_code,
    )


def not_found_page() -> HTMLResponse:
    return render_page(
        "Ticket not found",
        """
        <div class="card">
          <h1>Ticket not found</h1>
          <p class="muted">The ticket you are looking for does not exist or was removed.</p>
          <a class="btn" href="/app/tickets">Back to tickets</a>
        </div>
        """,
        active="/app/tickets",
        status_code=404,
    )


# Helpers for display

def format_timestamp(value) -> str:
    if value is None:
        return "—"
    return value.strftime("%Y-%m-%d %H:%M UTC")


def status_pill(status: TicketStatus) -> str:
    return f"<span class='pill {STATUS_VARIANTS[status]}'>{escape(status.value)}</span>"


def priority_pill(priority) -> str:
    variant = PRIORITY_VARIANTS.get(priority.value, "")
    return f"<span class='pill {variant}'>{escape(priority.value)} priority</span>"


def options(values, selected, labels: Optional[Dict] = None) -> str:
    rendered = []
    for value in values:
        raw = value.value if hasattr(value, "value") else str(value)
        label = labels.get(value, raw) if labels else raw
        is_selected = " selected" if raw == str(getattr(selected, "value", selected)) else ""
        rendered.append(
            f"<option value='{escape(raw, quote=True)}'{is_selected}>{escape(label)}</option>"
        )
    return "".join(rendered)


def list_url(filters: TicketFilters) -> str:
    return "/app/tickets" + to_query_string(filters)


# Dashboard

@app.get("/app", response_class=HTMLResponse)
def dashboard(store: TicketsStore = Depends(get_store)):
    tickets = store.tickets

    stats = [
        ("All tickets", len(tickets), TicketFilters()),
        ("Active", derive_ticket_view(tickets, TicketFilters(status=ACTIVE)).total, TicketFilters(status=ACTIVE)),
        ("Resolved", derive_ticket_view(tickets, TicketFilters(status=TicketStatus.RESOLVED.value)).total,
         TicketFilters(status=TicketStatus.RESOLVED.value)),
        ("Awaiting AI", derive_ticket_view(tickets, TicketFilters(answered=AnsweredFilter.PENDING)).total,
         TicketFilters(answered=AnsweredFilter.PENDING)),
    ]
    stat_cards = "".join(
        f"""
        <a class="card" href="{list_url(f)}">
          <div class="muted">{label}</div>
          <div class="stat">{count}</div>
        </a>
        """
        for label, count, f in stats
    )

    recent = derive_ticket_view(tickets, TicketFilters(sort=SortOrder.UPDATED, page_size=10)).items[:5]
    if recent:
        rows = "".join(
            f"<tr><td><a href='/app/tickets/{t.id}'>{escape(t.title)}</a></td>"
            f"<td>{status_pill(t.status)}</td>"
            f"<td>{format_timestamp(t.last_activity)}</td></tr>"
            for t in recent
        )
        recent_html = f"""
        <table>
          <thead><tr><th>Ticket</th><th>Status</th><th>Last activity</th></tr></thead>
          <tbody>{rows}</tbody>
        </table>
        """
    else:
        recent_html = """
        <p class="muted">No activity yet. Create your first support ticket to generate AI insights and summaries.</p>
        <a class="btn" href="/app/tickets/new">Create a new ticket</a>
        """

    body = f"""
    <div class="page-header">
      <h1>Dashboard</h1>
      <div class="meta">Track support activity, AI response status, and QA visibility from one place.</div>
    </div>
    <section class="stats">{stat_cards}</section>
    <section class="card">
      <div class="section-title">Recently updated</div>
      {recent_html}
    </section>
    """
    return render_page("Dashboard", body, active="/app")


# Ticket list + filters + sort + pagination + bulk actions

def _filters_form(filters: TicketFilters) -> str:
    answered_labels = {
        AnsweredFilter.ALL: "All",
        AnsweredFilter.ANSWERED: "AI answered",
        AnsweredFilter.PENDING: "AI pending",
    }
    return f"""
    <form method="post" action="/app/tickets/filters" class="grid">
      <div>
        <label for="q">Search</label>
        <input type="search" id="q" name="q" value="{escape(filters.q, quote=True)}" placeholder="Title or description" />
      </div>
      <div>
        <label for="status">Status</label>
        <select id="status" name="status">{options(STATUS_FILTERS, filters.status)}</select>
      </div>
      <div>
        <label for="category">Category</label>
        <select id="category" name="category">{options(CATEGORY_FILTERS, filters.category)}</select>
      </div>
      <div>
        <label for="priority">Priority</label>
        <select id="priority" name="priority">{options(PRIORITY_FILTERS, filters.priority)}</select>
      </div>
      <div>
        <label for="answered">AI output</label>
        <select id="answered" name="answered">{options(list(AnsweredFilter), filters.answered, answered_labels)}</select>
      </div>
      <div>
        <label for="sort">Sort</label>
        <select id="sort" name="sort">{options(list(SortOrder), filters.sort, SORT_LABELS)}</select>
      </div>
      <div>
        <label for="pageSize">Per page</label>
        <select id="pageSize" name="pageSize">{options(PAGE_SIZES, filters.page_size)}</select>
      </div>
      <div>
        <label>&nbsp;</label>
        <button type="submit">Apply</button>
      </div>
    </form>
    """


def _active_filter_chips(filters: TicketFilters) -> str:
    active = active_filters(filters)
    if not active:
        return ""
    chips = []
    for name, value in active:
        field = PARAM_FIELDS[name]
        without = update_filters(filters, **{field: getattr(DEFAULT_FILTERS, field)})
        chips.append(
            f"<a class='pill' href='{list_url(without)}'>"
            f"{escape(name)}: {escape(value)} ✕</a>"
        )
    chips = "".join(chips)
    cleared = update_filters(
        filters,
        status=ALL,
        category=ALL,
        priority=ALL,
        answered=AnsweredFilter.ALL,
        q="",
    )
    return f"""
    <div class="chips" style="margin-top: 12px;">
      <span class="muted">Active filters:</span> {chips}
      <a href="{list_url(cleared)}">Clear filters</a>
    </div>
    """


@app.post("/app/tickets/filters")
async def apply_filters(request: Request):
    """Turn the filter form into a canonical list URL; page starts over at 1."""
    form = await request.form()
    params = {k: v for k, v in form.items() if k != "page" and isinstance(v, str)}
    filters = decode_filters(params)
    return RedirectResponse(url=list_url(filters), status_code=303)


@app.get("/app/tickets", response_class=HTMLResponse)
def list_tickets_page(request: Request, store: TicketsStore = Depends(get_store)):
    filters = decode_filters(request.query_params)
    view = derive_ticket_view(store.tickets, filters)

    # Out-of-range pages land on the nearest valid page
    if view.page != filters.page:
        return RedirectResponse(url=list_url(update_filters(filters, page=view.page)), status_code=302)

    query = to_query_string(filters)

    if view.overall == 0:
        listing = """
        <div class="card">
          <h2>No tickets found</h2>
          <p class="muted">Create a new ticket to see it appear in the dashboard list.</p>
          <a class="btn" href="/app/tickets/new">Create a new ticket</a>
        </div>
        """
    elif view.total == 0:
        listing = f"""
        <div class="card">
          <h2>No tickets match these filters</h2>
          <p class="muted">Try a different search or widen the filters.</p>
          <a class="btn" href="{list_url(TicketFilters(sort=filters.sort, page_size=filters.page_size))}">Clear filters</a>
        </div>
        """
    else:
        rows = "".join(
            f"<tr>"
            f"<td><input type='checkbox' name='ids' value='{t.id}' aria-label='Select ticket' /></td>"
            f"<td><a href='/app/tickets/{t.id}'>{escape(t.title)}</a>"
            f"<div class='muted'>{escape(t.description[:120])}</div></td>"
            f"<td>{escape(t.category.value)}</td>"
            f"<td>{priority_pill(t.priority)}</td>"
            f"<td>{status_pill(t.status)}</td>"
            f"<td>{'Yes' if t.ai_output else '—'}</td>"
            f"<td>{format_timestamp(t.created_at)}</td>"
            f"</tr>"
            for t in view.items
        )

        prev_link = (
            f"<a href='{list_url(update_filters(filters, page=view.page - 1))}'>Prev</a>"
            if view.has_prev else ""
        )
        next_link = (
            f"<a href='{list_url(update_filters(filters, page=view.page + 1))}'>Next</a>"
            if view.has_next else ""
        )

        listing = f"""
        <form method="post" action="/app/tickets/bulk{query}" class="card">
          <div style="display: flex; gap: 10px; align-items: center; margin-bottom: 10px;">
            <span class="muted">Bulk actions:</span>
            <select name="status" style="width: auto;">{options(ALLOWED_STATUSES, TicketStatus.IN_PROGRESS.value)}</select>
            <button type="submit" name="action" value="status" class="secondary">Set status</button>
            <button type="submit" name="action" value="delete" class="danger">Delete selected</button>
          </div>
          <table>
            <thead>
              <tr>
                <th><input type="checkbox" name="select_page" value="1" aria-label="Select all on this page" /></th>
                <th>Title</th>
                <th>Category</th>
                <th>Priority</th>
                <th>Status</th>
                <th>AI</th>
                <th>Created</th>
              </tr>
            </thead>
            <tbody>{rows}</tbody>
          </table>
          <div class="pagination">
            <span>Showing {view.start_index}–{view.end_index} of {view.total} · Page {view.page} of {view.total_pages}</span>
            <span>{prev_link}{next_link}</span>
          </div>
        </form>
        """

    body = f"""
    <div class="page-header">
      <h1>Tickets</h1>
      <a class="btn secondary" href="/app/tickets/new">Create a new ticket</a>
    </div>
    <section class="card">
      {_filters_form(filters)}
      {_active_filter_chips(filters)}
    </section>
    {listing}
    """
    return render_page("Tickets", body, active="/app/tickets")


def _page_selection(request: Request, store: TicketsStore, ids: List[str], select_page: bool) -> Tuple[TicketFilters, TicketSelection]:
    """Selection limited to what the submitting list page actually showed."""
    filters = decode_filters(request.query_params)
    page_ids = [t.id for t in derive_ticket_view(store.tickets, filters).items]

    selection = TicketSelection()
    if select_page:
        selection.toggle_page(page_ids)
    else:
        for ticket_id in dict.fromkeys(ids):
            if ticket_id in page_ids:
                selection.toggle(ticket_id)
    return filters, selection


@app.post("/app/tickets/bulk")
def bulk_action(
    request: Request,
    action: str = Form(...),
    status: Optional[str] = Form(None),
    ids: List[str] = Form([]),
    select_page: Optional[str] = Form(None),
    store: TicketsStore = Depends(get_store),
):
    filters, selection = _page_selection(request, store, ids, bool(select_page))
    back = list_url(filters)
    if not len(selection):
        return RedirectResponse(url=back, status_code=303)

    if action == "status" and status in ALLOWED_STATUSES:
        store.bulk_update_status(selection.ids, TicketStatus(status))
        return RedirectResponse(url=back, status_code=303)

    if action == "delete":
        chosen = [store.get(i) for i in selection.ids]
        items = "".join(f"<li>{escape(t.title)}</li>" for t in chosen if t is not None)
        hidden = "".join(f"<input type='hidden' name='ids' value='{i}' />" for i in selection.ids)
        body = f"""
        <div class="card">
          <h1>Delete {len(selection)} ticket(s)?</h1>
          <p class="muted">This removes them permanently from this workspace.</p>
          <ul>{items}</ul>
          <form method="post" action="/app/tickets/bulk/delete{to_query_string(filters)}">
            {hidden}
            <input type="hidden" name="confirm" value="yes" />
            <button type="submit" class="danger">Delete permanently</button>
            <a class="btn secondary" href="{back}">Cancel</a>
          </form>
        </div>
        """
        return render_page("Confirm delete", body, active="/app/tickets")

    return RedirectResponse(url=back, status_code=303)


@app.post("/app/tickets/bulk/delete")
def bulk_delete_confirmed(
    request: Request,
    ids: List[str] = Form([]),
    confirm: Optional[str] = Form(None),
    store: TicketsStore = Depends(get_store),
):
    filters = decode_filters(request.query_params)
    deleted = store.bulk_delete(ids, confirmed=confirm == "yes")
    logger.info("Bulk delete removed %d ticket(s)", deleted)
    return RedirectResponse(url=list_url(filters), status_code=303)


# New ticket form

def validate_ticket_form(values: Dict[str, str]) -> Tuple[Optional[TicketCreate], Dict[str, str]]:
    """Per-field messages for the form; a TicketCreate only when there are none."""
    errors: Dict[str, str] = {}
    title = (values.get("title") or "").strip()
    description = (values.get("description") or "").strip()

    if not title:
        errors["title"] = "Title is required."
    elif len(title) > 255:
        errors["title"] = "Title must be 255 characters or fewer."
    if values.get("category") not in ALLOWED_CATEGORIES:
        errors["category"] = "Category is required."
    if values.get("priority") not in ALLOWED_PRIORITIES:
        errors["priority"] = "Priority is required."
    if values.get("channel") not in ALLOWED_CHANNELS:
        errors["channel"] = "Channel is required."
    if not description:
        errors["description"] = "Description is required."
    elif len(description) > 5000:
        errors["description"] = "Description must be 5000 characters or fewer."

    if errors:
        return None, errors

    environment = TicketEnvironment(
        browser=(values.get("browser") or "").strip() or None,
        os=(values.get("os") or "").strip() or None,
    )
    payload = TicketCreate(
        title=title,
        category=values["category"],
        priority=values["priority"],
        channel=values["channel"],
        description=description,
        steps_to_reproduce=values.get("steps_to_reproduce"),
        expected_result=values.get("expected_result"),
        actual_result=values.get("actual_result"),
        environment=environment if environment.model_dump(exclude_none=True) else None,
    )
    return payload, {}


def _new_ticket_page(values: Dict[str, str], errors: Dict[str, str], status_code: int = 200) -> HTMLResponse:
    def value(name: str) -> str:
        return escape(values.get(name, ""), quote=True)

    def error(name: str) -> str:
        return f"<div class='error'>{escape(errors[name])}</div>" if name in errors else ""

    def select(name: str, choices: List[str]) -> str:
        placeholder = f"<option value=''>Select {name}</option>"
        return f"<select id='{name}' name='{name}'>{placeholder}{options(choices, values.get(name, ''))}</select>"

    body = f"""
    <div class="page-header">
      <h1>New Ticket</h1>
      <div class="meta">Capture the issue context so AI can generate an empathetic response and a structured QA report.</div>
    </div>
    <form method="post" action="/app/tickets/new" class="card">
      <div style="margin-bottom: 12px;">
        <label for="title">Title</label>
        <input type="text" id="title" name="title" value="{value('title')}" placeholder="Short summary of the issue" />
        {error('title')}
      </div>
      <div class="grid" style="margin-bottom: 12px;">
        <div><label for="category">Category</label>{select('category', ALLOWED_CATEGORIES)}{error('category')}</div>
        <div><label for="priority">Priority</label>{select('priority', ALLOWED_PRIORITIES)}{error('priority')}</div>
        <div><label for="channel">Channel</label>{select('channel', ALLOWED_CHANNELS)}{error('channel')}</div>
      </div>
      <div style="margin-bottom: 12px;">
        <label for="description">Description</label>
        <textarea id="description" name="description">{value('description')}</textarea>
        {error('description')}
      </div>
      <div class="section-title">Optional details</div>
      <div style="margin-bottom: 12px;">
        <label for="steps_to_reproduce">Steps to reproduce</label>
        <textarea id="steps_to_reproduce" name="steps_to_reproduce">{value('steps_to_reproduce')}</textarea>
      </div>
      <div class="grid" style="margin-bottom: 12px;">
        <div><label for="expected_result">Expected result</label>
          <input type="text" id="expected_result" name="expected_result" value="{value('expected_result')}" /></div>
        <div><label for="actual_result">Actual result</label>
          <input type="text" id="actual_result" name="actual_result" value="{value('actual_result')}" /></div>
      </div>
      <div class="section-title">Environment (detected automatically, override if needed)</div>
      <div class="grid" style="margin-bottom: 16px;">
        <div><label for="browser">Browser</label>
          <input type="text" id="browser" name="browser" value="{value('browser')}" /></div>
        <div><label for="os">Operating system</label>
          <input type="text" id="os" name="os" value="{value('os')}" /></div>
      </div>
      <button type="submit">Create ticket</button>
      <a class="btn secondary" href="/app/tickets">Cancel</a>
    </form>
    """
    return render_page("New Ticket", body, active="/app/tickets/new", status_code=status_code)


@app.get("/app/tickets/new", response_class=HTMLResponse)
def new_ticket_form():
    return _new_ticket_page({}, {})


@app.post("/app/tickets/new")
def submit_new_ticket(
    request: Request,
    title: str = Form(""),
    category: str = Form(""),
    priority: str = Form(""),
    channel: str = Form(""),
    description: str = Form(""),
    steps_to_reproduce: str = Form(""),
    expected_result: str = Form(""),
    actual_result: str = Form(""),
    browser: str = Form(""),
    os: str = Form(""),
    store: TicketsStore = Depends(get_store),
):
    values = {
        "title": title,
        "category": category,
        "priority": priority,
        "channel": channel,
        "description": description,
        "steps_to_reproduce": steps_to_reproduce,
        "expected_result": expected_result,
        "actual_result": actual_result,
        "browser": browser,
        "os": os,
    }

    payload, errors = validate_ticket_form(values)
    if payload is None:
        return _new_ticket_page(values, errors, status_code=400)

    detected = detect_environment(request.headers.get("user-agent"))
    ticket = store.create(payload, detected)
    return RedirectResponse(url=f"/app/tickets/{ticket.id}", status_code=303)


# Ticket detail + status + AI generation + history

def _ai_section(ticket: Ticket, generations: GenerationRegistry) -> str:
    generation = generations.peek(ticket.id)
    loading = generation is not None and generation.state == GenerationState.LOADING

    error_html = ""
    if generation is not None and generation.state == GenerationState.ERROR:
        error_html = f"""
        <div class="alert">
          {escape(generation.error or 'AI generation failed.')}
          <form method="post" action="/app/tickets/{ticket.id}/generate" class="inline-form">
            <button type="submit" class="secondary">Retry</button>
          </form>
        </div>
        """

    label = "Regenerate" if ticket.ai_output else "Generate AI response"
    if loading:
        label = "Generating…"
    generate_form = f"""
    <form method="post" action="/app/tickets/{ticket.id}/generate" class="inline-form">
      <button type="submit" {'disabled' if loading else ''}>{label}</button>
    </form>
    """

    output = ticket.ai_output
    if output is None:
        current_html = """
        <p class="muted">AI output pending. Generate responses to populate this view.</p>
        """
    else:
        questions = "".join(f"<li>{escape(q)}</li>" for q in output.follow_up_questions)
        if not questions:
            questions = "<li class='muted'>None</li>"
        current_html = f"""
        <div class="muted">Version {output.version} · {escape(output.model)} · generated {format_timestamp(output.generated_at)}</div>
        <div class="section-title">Customer reply</div>
        <pre>{escape(output.customer_reply)}</pre>
        <div class="section-title">QA summary</div>
        <pre>{escape(output.qa_summary)}</pre>
        <div class="section-title">Follow-up questions</div>
        <ul>{questions}</ul>
        """

    history_html = ""
    if ticket.ai_output_history:
        entries = "".join(
            f"""
            <tr>
              <td>v{entry.version}</td>
              <td>{format_timestamp(entry.generated_at)}</td>
              <td class="muted">{escape(entry.customer_reply[:90])}</td>
              <td>
                <form method="post" action="/app/tickets/{ticket.id}/restore" class="inline-form">
                  <input type="hidden" name="index" value="{index}" />
                  <button type="submit" class="secondary">Restore</button>
                </form>
              </td>
            </tr>
            """
            for index, entry in reversed(list(enumerate(ticket.ai_output_history)))
        )
        history_html = f"""
        <div class="section-title">Previous versions</div>
        <table>
          <thead><tr><th>Version</th><th>Generated</th><th>Reply</th><th></th></tr></thead>
          <tbody>{entries}</tbody>
        </table>
        """

    return f"""
    <section class="card">
      <div class="page-header">
        <h2 style="margin: 0;">AI analysis</h2>
        {generate_form}
      </div>
      {error_html}
      {current_html}
      {history_html}
    </section>
    """


@app.get("/app/tickets/{ticket_id}", response_class=HTMLResponse)
def ticket_detail(
    ticket_id: str,
    store: TicketsStore = Depends(get_store),
    generations: GenerationRegistry = Depends(get_generations),
):
    ticket = store.get(ticket_id)
    if ticket is None:
        return not_found_page()

    optional_rows = "".join(
        f"<div class='section-title'>{label}</div><pre>{escape(text)}</pre>"
        for label, text in [
            ("Steps to reproduce", ticket.steps_to_reproduce),
            ("Expected result", ticket.expected_result),
            ("Actual result", ticket.actual_result),
        ]
        if text
    )
    env = ticket.environment
    env_text = " · ".join(
        escape(v) for v in [env.browser, env.os, env.device_type] if v
    ) or "Not captured"

    body = f"""
    <div class="breadcrumbs"><a href="/app/tickets">← Back to tickets</a></div>
    <div class="page-header">
      <h1>{escape(ticket.title)}</h1>
      <div>{status_pill(ticket.status)} {priority_pill(ticket.priority)}</div>
    </div>
    <section class="card">
      <div class="grid">
        <div><div class="muted">Category</div>{escape(ticket.category.value)}</div>
        <div><div class="muted">Channel</div>{escape(ticket.channel.value)}</div>
        <div><div class="muted">Created</div>{format_timestamp(ticket.created_at)}</div>
        <div><div class="muted">Updated</div>{format_timestamp(ticket.updated_at)}</div>
      </div>
      <div class="section-title">Description</div>
      <pre>{escape(ticket.description)}</pre>
      {optional_rows}
      <div class="section-title">Environment</div>
      <div>{env_text}</div>
    </section>
    <section class="card">
      <form method="post" action="/app/tickets/{ticket.id}/status" class="inline-form">
        <label for="status">Status</label>
        <select id="status" name="status" style="width: auto;">{options(ALLOWED_STATUSES, ticket.status.value)}</select>
        <button type="submit" class="secondary">Update status</button>
      </form>
      <form method="post" action="/app/tickets/{ticket.id}/delete" class="inline-form" style="margin-left: 16px;">
        <button type="submit" class="danger">Delete ticket</button>
      </form>
    </section>
    {_ai_section(ticket, generations)}
    """
    return render_page(ticket.title, body, active="/app/tickets")


@app.post("/app/tickets/{ticket_id}/status")
def ticket_status_update(
    ticket_id: str,
    status: str = Form(...),
    store: TicketsStore = Depends(get_store),
):
    if status not in ALLOWED_STATUSES:
        return RedirectResponse(url=f"/app/tickets/{ticket_id}", status_code=303)
    if store.update_status(ticket_id, TicketStatus(status)) is None:
        return not_found_page()
    return RedirectResponse(url=f"/app/tickets/{ticket_id}", status_code=303)


@app.post("/app/tickets/{ticket_id}/generate")
async def ticket_generate(
    ticket_id: str,
    store: TicketsStore = Depends(get_store),
    generations: GenerationRegistry = Depends(get_generations),
):
    ticket = store.get(ticket_id)
    if ticket is None:
        return not_found_page()

    generation = generations.for_ticket(ticket_id)
    result = await generation.run(ticket)
    if result is not None:
        # Storage writes are blocking
        await run_in_threadpool(store.save_ai_output, ticket_id, result, OPENAI_MODEL)
        generation.reset()
    return RedirectResponse(url=f"/app/tickets/{ticket_id}", status_code=303)


@app.post("/app/tickets/{ticket_id}/restore")
def ticket_restore_version(
    ticket_id: str,
    index: int = Form(...),
    store: TicketsStore = Depends(get_store),
):
    if store.get(ticket_id) is None:
        return not_found_page()
    store.restore_version(ticket_id, index)
    return RedirectResponse(url=f"/app/tickets/{ticket_id}", status_code=303)


@app.post("/app/tickets/{ticket_id}/delete")
def ticket_delete(
    ticket_id: str,
    store: TicketsStore = Depends(get_store),
    generations: GenerationRegistry = Depends(get_generations),
):
    if not store.delete(ticket_id):
        return not_found_page()
    generations.discard(ticket_id)
    return RedirectResponse(url="/app/tickets", status_code=303)


# Settings

@app.get("/app/settings", response_class=HTMLResponse)
def settings_page(store: TicketsStore = Depends(get_store)):
    gateway = AI_GATEWAY_URL or "in-process"
    body = f"""
    <div class="page-header">
      <h1>Settings</h1>
      <div class="meta">Workspace preferences and support workflow defaults.</div>
    </div>
    <section class="card">
      <div class="grid">
        <div><div class="muted">Storage key</div>{escape(STORAGE_KEY)}</div>
        <div><div class="muted">Stored tickets</div>{len(store.tickets)}</div>
        <div><div class="muted">AI model</div>{escape(OPENAI_MODEL)}</div>
        <div><div class="muted">AI gateway</div>{escape(gateway)}</div>
      </div>
    </section>
    <section class="card">
      <div class="section-title">Danger zone</div>
      <form method="post" action="/app/settings/clear">
        <label><input type="checkbox" name="confirm" value="yes" /> I understand this deletes every ticket</label>
        <button type="submit" class="danger">Clear all tickets</button>
      </form>
    </section>
    """
    return render_page("Settings", body, active="/app/settings")


@app.post("/app/settings/clear")
def settings_clear(
    confirm: Optional[str] = Form(None),
    store: TicketsStore = Depends(get_store),
):
    if confirm == "yes":
        store.clear_all()
        logger.info("All tickets cleared")
    return RedirectResponse(url="/app/settings", status_code=303)
