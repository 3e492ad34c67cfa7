"""Standalone macOS menu bar app showing Claude usage and pacing."""

import asyncio
import logging
import os
import subprocess
import threading
import webbrowser

import rumps
from PyObjCTools import AppHelper

from pace_bar.attributed import (
    DETAIL_FONT_SIZE,
    TITLE_FONT_SIZE,
    set_hidden,
    set_styled_title,
    styled_segments,
    styled_string,
)
from pace_bar.client import UsageClient
from pace_bar.config import (
    LOG_ENV_VAR,
    MODE_EMOJI,
    MODE_HIGHEST,
    MODE_PACE,
    MODE_SESSION,
    load_config,
    save_config,
)
from pace_bar.credentials import default_credential_provider, find_claude
from pace_bar.display import (
    COLOR_MUTED,
    STATUS_COLORS,
    STATUS_CRITICAL,
    bar_segments,
    menu_bar_text,
    pace_bar,
    pace_delta,
    status_for_pct,
    time_since,
    time_until,
    usage_status,
)
from pace_bar.models import StateStore
from pace_bar.refresh import RefreshOrchestrator
from pace_bar.updates import UpdateChecker

logger = logging.getLogger(__name__)

TICK_INTERVAL = 60
WAKE_DELAY = 3  # keychain may still be locked right after wake

_MODE_LABELS = [
    (MODE_SESSION, "Session (5h)"),
    (MODE_HIGHEST, "Highest"),
    (MODE_PACE, "Session + Pace Marker"),
    (MODE_EMOJI, "Status Dot"),
]


class PaceBarApp(rumps.App):
    def __init__(self, config=None):
        super().__init__("Pace Bar", title="C: ...")
        self._config = config if config is not None else load_config()
        self._display_mode = self._config["display_mode"]

        self._session = rumps.MenuItem("Session (5h)")
        self._session_detail = rumps.MenuItem("  Resets in ...")
        self._week = rumps.MenuItem("Week (all)")
        self._week_detail = rumps.MenuItem("  Resets in ...")
        self._sonnet = rumps.MenuItem("Week (Sonnet)")
        self._sonnet_detail = rumps.MenuItem("  Resets in ...")
        self._error = rumps.MenuItem("error")
        self._error_hint = rumps.MenuItem("hint")
        self._login_btn = rumps.MenuItem(
            "Log in with Claude Code...", callback=self._on_login,
        )
        self._updated = rumps.MenuItem("Not updated yet")

        self._mode_items = {}
        self._mode_submenu = rumps.MenuItem("Bar Style")
        for mode, label in _MODE_LABELS:
            item = rumps.MenuItem(label, callback=self._on_mode)
            item.mode = mode
            self._mode_items[mode] = item
            self._mode_submenu.add(item)

        self._update_btn = rumps.MenuItem("Update available", callback=self._on_update)
        self._refresh_btn = rumps.MenuItem("Refresh", callback=self._on_refresh)

        self.menu = [
            self._session,
            self._session_detail,
            None,  # separator
            self._week,
            self._week_detail,
            None,
            self._sonnet,
            self._sonnet_detail,
            None,
            self._error,
            self._error_hint,
            self._login_btn,
            None,
            self._updated,
            self._mode_submenu,
            self._update_btn,
            None,
            self._refresh_btn,
        ]
        for item in (self._sonnet, self._sonnet_detail, self._error,
                     self._error_hint, self._login_btn, self._update_btn):
            set_hidden(item, True)
        self._update_mode_checkmarks()

        # Composition root: the store is the only shared state, and it is
        # only ever written from the refresh loop thread.
        self._store = StateStore()
        self._orchestrator = RefreshOrchestrator(
            self._store,
            default_credential_provider(self._config),
            UsageClient(self._config["api_base_url"]),
        )
        self._updates = UpdateChecker(self._config.get("update_repo"))
        self._store.subscribe(self._on_state_change)

        self._loop = asyncio.new_event_loop()
        threading.Thread(
            target=self._loop.run_forever, name="pace-bar-refresh", daemon=True,
        ).start()

        self._timer = rumps.Timer(self._on_timer, self._config["refresh_interval"])
        self._timer.start()
        self._tick = rumps.Timer(self._on_tick, TICK_INTERVAL)
        self._tick.start()

        # One-shot timer to do initial fetch once the run loop is up
        # (can't access nsstatusitem during __init__)
        self._init_timer = rumps.Timer(self._on_init, 1)
        self._init_timer.start()

        rumps.events.on_wake.register(self._on_wake)

    # ── Triggers ─────────────────────────────────────────────────────────────

    def _submit(self, coro):
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        future.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(future):
        if not future.cancelled() and future.exception() is not None:
            logger.error("Background task failed", exc_info=future.exception())

    def _on_init(self, _sender):
        self._init_timer.stop()
        self._submit(self._startup())

    async def _startup(self):
        await self._orchestrator.refresh()
        if await self._updates.check_for_updates():
            AppHelper.callAfter(self._show_update)

    async def _refresh_after_wake(self):
        await asyncio.sleep(WAKE_DELAY)
        await self._orchestrator.refresh()

    def _on_wake(self):
        logger.debug("System woke, scheduling refresh")
        self._submit(self._refresh_after_wake())

    def _on_timer(self, _sender):
        self._submit(self._orchestrator.refresh())

    def _on_refresh(self, _sender):
        self._submit(self._orchestrator.refresh())

    def _on_tick(self, _sender):
        # Period progress and countdowns move even when the data doesn't.
        self._render(self._store.state)

    def _on_state_change(self, state):
        AppHelper.callAfter(self._render, state)

    # ── Menu actions ─────────────────────────────────────────────────────────

    def _on_mode(self, sender):
        self._display_mode = sender.mode
        self._config["display_mode"] = sender.mode
        save_config(self._config)
        self._update_mode_checkmarks()
        self._render(self._store.state)

    def _update_mode_checkmarks(self):
        for mode, item in self._mode_items.items():
            item.state = mode == self._display_mode

    def _on_login(self, _sender):
        claude_bin = find_claude()
        if claude_bin is None:
            rumps.notification("Pace Bar", "Claude Code not found",
                               "Install Claude Code, then run 'claude' to log in.")
            return
        try:
            subprocess.Popen(["open", "-a", "Terminal", claude_bin])
        except OSError as e:
            logger.warning("Failed to open Terminal for login: %s", e)

    def _show_update(self):
        version = self._updates.available_version
        self._update_btn.title = f"Update available: v{version}"
        set_hidden(self._update_btn, False)

    def _on_update(self, _sender):
        webbrowser.open(f"https://github.com/{self._updates.repo}/releases/latest")

    # ── Rendering ────────────────────────────────────────────────────────────

    def _render(self, state):
        """Update the menu from *state* (main thread only)."""
        try:
            self._render_title(state)
            self._render_usage(state.snapshot)
            self._render_error(state.last_error)
            self._refresh_btn.title = "Refreshing..." if state.is_refreshing else "Refresh"
            self._updated.title = f"Updated {time_since(state.last_updated_at)}"
        except Exception:
            logger.exception("Failed to render state")

    def _render_title(self, state):
        snapshot = state.snapshot
        if snapshot is None and state.last_error is not None:
            text, color = "C: !!", STATUS_COLORS[STATUS_CRITICAL]
        else:
            text = menu_bar_text(snapshot, self._display_mode)
            color = STATUS_COLORS[usage_status(snapshot)]

        # Set plain title for rumps internal state
        self.title = text
        if self._display_mode != MODE_EMOJI:
            # _nsapp.nsstatusitem is a private rumps API; pinned to rumps <0.5
            self._nsapp.nsstatusitem.button().setAttributedTitle_(
                styled_string(text, color=color, font_size=TITLE_FONT_SIZE)
            )

    def _render_usage(self, snapshot):
        if snapshot is None:
            return
        self._style_window(
            self._session, self._session_detail, "Session (5h)    ",
            snapshot.session_utilization, snapshot.session_resets_at,
            snapshot.session_period_progress(),
        )
        self._style_window(
            self._week, self._week_detail, "Week (all)      ",
            snapshot.weekly_utilization, snapshot.weekly_resets_at,
            snapshot.weekly_period_progress(),
        )
        has_sonnet = snapshot.sonnet_utilization is not None
        set_hidden(self._sonnet, not has_sonnet)
        set_hidden(self._sonnet_detail, not has_sonnet)
        if has_sonnet:
            self._style_window(
                self._sonnet, self._sonnet_detail, "Week (Sonnet)   ",
                snapshot.sonnet_utilization, snapshot.sonnet_resets_at, None,
            )

    def _style_window(self, main_item, detail_item, label, utilization,
                      resets_at, progress):
        """Style a usage row (bar line + reset/pace line)."""
        color = STATUS_COLORS[status_for_pct(utilization)]
        segments = [(label, color)]
        segments.extend(bar_segments(pace_bar(utilization, progress), color))
        segments.append((f" {int(utilization)}%", color))
        set_styled_title(main_item, styled_segments(segments))

        detail = f"  Resets in {time_until(resets_at)}"
        delta = pace_delta(utilization, progress)
        if delta is not None:
            detail += f" · {progress}% elapsed"
            if delta > 0:
                detail += f", {delta} pts ahead of pace"
        set_styled_title(
            detail_item,
            styled_string(detail, color=COLOR_MUTED, font_size=DETAIL_FONT_SIZE),
        )

    def _render_error(self, error):
        set_hidden(self._error, error is None)
        set_hidden(self._error_hint, error is None or not error.hint)
        set_hidden(self._login_btn, error is None or not error.needs_login)
        if error is None:
            return
        set_styled_title(
            self._error,
            styled_string(f"Error: {error.message}",
                          color=STATUS_COLORS[STATUS_CRITICAL]),
        )
        if error.hint:
            set_styled_title(
                self._error_hint,
                styled_string(f"  {error.hint}", color=COLOR_MUTED,
                              font_size=DETAIL_FONT_SIZE),
            )


def main():
    """Entry point for console_scripts."""
    log_level = os.environ.get(LOG_ENV_VAR, "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    PaceBarApp().run()
