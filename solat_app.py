#!/usr/bin/env python3
"""
Solat Times Desktop Widget
Always-on-top window showing:
  - Current location (or the cached one when offline)
  - Today's five prayer times
  - Countdown to the next prayer
  - Notification and audio cue at each prayer time, delivered by the
    background alarm context even while the window is hidden
"""

import logging
import tkinter as tk
from tkinter import messagebox

from solat import config
from solat.asset_cache import AssetCache, AssetInstallError
from solat.audio import AdhanPlayer, find_adhan
from solat.background import BackgroundContext
from solat.channel import MessageChannel
from solat.clock import SystemClock
from solat.foreground import STATUS_CACHED, STATUS_LIVE, STATUS_UNAVAILABLE, ScheduleController
from solat.location import clear_manual_location, save_manual_location
from solat.notifier import notify_prayer_time
from solat.prayer_api import PRAYER_ARABIC, PRAYER_NAMES, ScheduleError
from solat.store import ScheduleStore

logger = logging.getLogger("solat_app")

# ──────────────────────────────────────────────────────────────────────────────
# Theme constants
# ──────────────────────────────────────────────────────────────────────────────
BG_DARK = "#0d1117"
BG_CARD = "#161b22"
BG_HIGHLIGHT = "#1a3a2a"
BORDER_COLOR = "#2ea043"
ACCENT_GOLD = "#f0c040"
ACCENT_GREEN = "#3fb950"
TEXT_WHITE = "#e6edf3"
TEXT_DIM = "#8b949e"
TEXT_RED = "#ff6b6b"

FONT_PIXEL = ("Courier", 10, "bold")
FONT_PIXEL_SM = ("Courier", 8)
FONT_PIXEL_LG = ("Courier", 14, "bold")
FONT_CLOCK = ("Courier", 22, "bold")
FONT_ARABIC = ("Arial", 12, "bold")

WINDOW_W = 420
WINDOW_H = 520

INSTALL_RETRY_MS = 60000
BANNER_MS = 15000


def _fmt_countdown(parts) -> str:
    return f"{parts.hours:02d}:{parts.minutes:02d}:{parts.seconds:02d}"


# ──────────────────────────────────────────────────────────────────────────────
# Main App
# ──────────────────────────────────────────────────────────────────────────────
class SolatApp:
    def __init__(self, root: tk.Tk, settings: config.Settings, channel: MessageChannel, clock_factory=SystemClock, player: AdhanPlayer = None):
        self.root = root
        self.settings = settings
        self.state = None
        self._muted = settings.muted
        self.player = player or AdhanPlayer(settings.volume, settings.muted)
        # returns the adhan to play (bytes or a path), or None
        self.adhan_source = lambda: find_adhan(path=settings.adhan_file)
        self._setup_window()
        self._build_ui()
        self.controller = ScheduleController(
            channel,
            settings=settings,
            clock_factory=clock_factory,
            on_update=lambda state: self.root.after(0, lambda: self._on_schedule(state)),
        )

    def _setup_window(self):
        root = self.root
        root.title("Solat Times")
        root.configure(bg=BG_DARK)
        root.resizable(False, False)
        root.attributes("-topmost", True)
        x = root.winfo_screenwidth() - WINDOW_W - 40
        y = (root.winfo_screenheight() - WINDOW_H) // 2
        root.geometry(f"{WINDOW_W}x{WINDOW_H}+{x}+{y}")

    # ──────────────────────────────────────────────────────────────────────
    # UI construction
    # ──────────────────────────────────────────────────────────────────────
    def _build_ui(self):
        frame = tk.Frame(self.root, bg=BG_DARK)
        frame.pack(fill=tk.BOTH, expand=True, padx=10, pady=8)

        tk.Label(frame, text="🕌  SOLAT TIMES", font=FONT_PIXEL_LG, fg=ACCENT_GOLD, bg=BG_DARK).pack()

        loc_frame = tk.Frame(frame, bg=BG_DARK)
        loc_frame.pack(fill=tk.X, pady=(6, 0))
        self.lbl_location = tk.Label(loc_frame, text="📍 Detecting location…", font=FONT_PIXEL, fg=TEXT_DIM, bg=BG_DARK)
        self.lbl_location.pack(side=tk.LEFT, expand=True)
        tk.Button(
            loc_frame, text="📍⟳", font=FONT_PIXEL_SM, fg=ACCENT_GREEN, bg=BG_DARK,
            bd=0, cursor="hand2", command=self._show_location_dialog,
        ).pack(side=tk.RIGHT, padx=4)

        self.lbl_status = tk.Label(frame, text="", font=FONT_PIXEL_SM, fg=TEXT_DIM, bg=BG_DARK)
        self.lbl_status.pack()
        self.lbl_hijri = tk.Label(frame, text="", font=FONT_PIXEL, fg=ACCENT_GOLD, bg=BG_DARK)
        self.lbl_hijri.pack()
        self.lbl_clock = tk.Label(frame, text="00:00:00", font=FONT_CLOCK, fg=ACCENT_GOLD, bg=BG_DARK)
        self.lbl_clock.pack(pady=4)

        self.prayer_rows: dict = {}
        grid = tk.Frame(frame, bg=BG_DARK)
        grid.pack(fill=tk.X, pady=4)
        for name in PRAYER_NAMES:
            row = tk.Frame(grid, bg=BG_CARD, pady=2)
            row.pack(fill=tk.X, pady=1)
            lbl_name = tk.Label(row, text=f" {name}  {PRAYER_ARABIC[name]}", font=FONT_PIXEL, fg=TEXT_WHITE, bg=BG_CARD, anchor="w", width=24)
            lbl_name.pack(side=tk.LEFT, padx=4)
            lbl_time = tk.Label(row, text="--:--", font=FONT_PIXEL_LG, fg=TEXT_WHITE, bg=BG_CARD, anchor="e", width=8)
            lbl_time.pack(side=tk.RIGHT, padx=4)
            self.prayer_rows[name] = {"row": row, "lbl_name": lbl_name, "lbl_time": lbl_time}

        tk.Label(frame, text="NEXT PRAYER", font=FONT_PIXEL, fg=TEXT_DIM, bg=BG_DARK).pack(pady=(8, 0))
        self.lbl_next_name = tk.Label(frame, text="—", font=FONT_PIXEL_LG, fg=ACCENT_GREEN, bg=BG_DARK)
        self.lbl_next_name.pack()
        self.lbl_countdown = tk.Label(frame, text="--:--:--", font=FONT_CLOCK, fg=ACCENT_GOLD, bg=BG_DARK)
        self.lbl_countdown.pack()

        self.btn_mute = tk.Button(
            frame, text=self._mute_text(), font=FONT_PIXEL_SM, fg=TEXT_WHITE, bg=BG_CARD,
            bd=0, cursor="hand2", command=self._toggle_mute,
        )
        self.btn_mute.pack(pady=(6, 0))

        self.volume_var = tk.DoubleVar(value=round(self.settings.volume * 100))
        tk.Scale(
            frame, from_=0, to=100, orient=tk.HORIZONTAL, variable=self.volume_var, label="Adhan volume",
            font=FONT_PIXEL_SM, fg=TEXT_WHITE, bg=BG_DARK, troughcolor=BG_CARD, highlightthickness=0,
            length=200, command=self._on_volume,
        ).pack(pady=(0, 6))

        # shown only while a notification is on screen
        self.notif_frame = tk.Frame(frame, bg="#2d1b00", bd=1, relief=tk.RIDGE)
        self.lbl_notif_title = tk.Label(self.notif_frame, text="", font=FONT_PIXEL, fg=ACCENT_GOLD, bg="#2d1b00")
        self.lbl_notif_title.pack(pady=2)
        self.lbl_notif_msg = tk.Label(self.notif_frame, text="", font=FONT_PIXEL_SM, fg=TEXT_WHITE, bg="#2d1b00")
        self.lbl_notif_msg.pack(pady=(0, 4))

    def _mute_text(self) -> str:
        return "🔇 Muted" if self._muted else "🔊 Sound On"

    def _toggle_mute(self):
        self._muted = not self._muted
        self.settings.muted = self._muted
        self.player.set_muted(self._muted)
        self.btn_mute.config(text=self._mute_text())
        self._save_settings()

    def _on_volume(self, value):
        self.settings.volume = float(value) / 100
        self.player.set_volume(self.settings.volume)
        self._save_settings()

    def _save_settings(self):
        try:
            config.save_settings(self.settings)
        except OSError as exc:
            logger.warning("Could not save settings: %s", exc)

    # ──────────────────────────────────────────────────────────────────────
    # Schedule updates
    # ──────────────────────────────────────────────────────────────────────
    def start(self):
        self.controller.refresh_in_background()
        self._tick()

    def _on_schedule(self, state):
        """Called in main thread once the controller has a schedule."""
        self.state = state
        color = TEXT_RED if state.status == STATUS_UNAVAILABLE else (ACCENT_GOLD if state.degraded else ACCENT_GREEN)
        self.lbl_location.config(text=f"📍 {state.label}", fg=color)
        self.lbl_status.config(text="" if state.status == STATUS_LIVE else f"⚠ {state.status}")
        if state.hijri:
            hijri = state.hijri
            self.lbl_hijri.config(text=f"☪  {hijri['day']} {hijri['month_name']} {hijri['year']} H")
        elif state.status == STATUS_CACHED:
            self.lbl_hijri.config(text="")
        for name, widgets in self.prayer_rows.items():
            widgets["lbl_time"].config(text=state.timings.get(name, "--:--"))

    def deliver(self, prayer_name: str):
        """Background-context delivery hook; runs on the background worker."""
        if self.settings.notifications_enabled:
            notify_prayer_time(prayer_name, callback=self.on_notification)
        else:
            self.on_notification("🕌 Prayer Time", f"It's time for {prayer_name}")

    def on_notification(self, title: str, message: str):
        self.root.after(0, lambda: self._show_notif_banner(title, message))
        if self._muted:
            return
        source = self.adhan_source()
        if source is None or not self.player.play(source):
            self.root.after(0, self.root.bell)

    def _show_notif_banner(self, title: str, message: str):
        self.lbl_notif_title.config(text=title)
        self.lbl_notif_msg.config(text=message)
        self.notif_frame.pack(fill=tk.X, padx=14, pady=4)
        self.root.after(BANNER_MS, self.notif_frame.pack_forget)

    # ──────────────────────────────────────────────────────────────────────
    # Live clock + countdown tick
    # ──────────────────────────────────────────────────────────────────────
    def _tick(self):
        now = self.controller.now()
        self.lbl_clock.config(text=now.strftime("%H:%M:%S"))
        try:
            upcoming = self.controller.next_prayer(now)
        except ScheduleError:
            self.lbl_next_name.config(text="Incomplete schedule")
            self.lbl_countdown.config(text="--:--:--")
        else:
            if upcoming:
                name, parts = upcoming
                self.lbl_next_name.config(text=name)
                color = TEXT_RED if parts.hours == 0 and parts.minutes < 5 else ACCENT_GOLD
                self.lbl_countdown.config(text=_fmt_countdown(parts), fg=color)
        self.root.after(self.settings.display_refresh_ms, self._tick)

    # ──────────────────────────────────────────────────────────────────────
    # Location dialog
    # ──────────────────────────────────────────────────────────────────────
    def _show_location_dialog(self):
        dlg = tk.Toplevel(self.root)
        dlg.title("Set Location")
        dlg.configure(bg=BG_DARK)
        dlg.attributes("-topmost", True)
        dlg.transient(self.root)
        dlg.grab_set()

        fields_frame = tk.Frame(dlg, bg=BG_DARK)
        fields_frame.pack(fill=tk.X, padx=20, pady=8)
        keys = ["city", "region", "country", "lat", "lon", "timezone"]
        current = self.state.location if self.state else {}
        entries = {}
        for i, key in enumerate(keys):
            tk.Label(fields_frame, text=f"{key.title()}:", font=FONT_PIXEL_SM, fg=TEXT_WHITE, bg=BG_DARK, width=10, anchor="w").grid(row=i, column=0, sticky="w", pady=2)
            ent = tk.Entry(fields_frame, font=FONT_PIXEL_SM, fg=TEXT_WHITE, bg=BG_CARD, insertbackground=TEXT_WHITE, width=28, relief=tk.FLAT)
            ent.grid(row=i, column=1, sticky="ew", pady=2, padx=(4, 0))
            if key in current:
                ent.insert(0, str(current[key]))
            entries[key] = ent

        def _apply():
            try:
                loc = {key: entries[key].get().strip() for key in keys}
                loc["lat"] = float(loc["lat"])
                loc["lon"] = float(loc["lon"])
            except ValueError:
                messagebox.showerror("Invalid input", "Latitude and Longitude must be numbers.", parent=dlg)
                return
            save_manual_location(loc)
            dlg.destroy()
            self._reload_data()

        def _refresh_ip():
            clear_manual_location()
            dlg.destroy()
            self._reload_data()

        btn_frame = tk.Frame(dlg, bg=BG_DARK)
        btn_frame.pack(pady=10)
        tk.Button(btn_frame, text="  Save  ", font=FONT_PIXEL_SM, fg=BG_DARK, bg=ACCENT_GREEN, bd=0, command=_apply).pack(side=tk.LEFT, padx=6)
        tk.Button(btn_frame, text="  Refresh from IP  ", font=FONT_PIXEL_SM, fg=BG_DARK, bg=ACCENT_GOLD, bd=0, command=_refresh_ip).pack(side=tk.LEFT, padx=6)
        tk.Button(btn_frame, text="  Cancel  ", font=FONT_PIXEL_SM, fg=TEXT_WHITE, bg=BG_CARD, bd=0, command=dlg.destroy).pack(side=tk.LEFT, padx=6)

    def _reload_data(self):
        self.lbl_location.config(text="📍 Refreshing location…", fg=TEXT_DIM)
        self.controller.refresh_in_background()


# ──────────────────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────────────────
def _start_background(root: tk.Tk, background: BackgroundContext, app: SolatApp):
    try:
        background.start()
    except AssetInstallError as exc:
        logger.error("Offline assets could not be installed (%s); retrying in %d s", exc, INSTALL_RETRY_MS // 1000)
        app.lbl_status.config(text="⚠ offline assets unavailable, retrying…", fg=TEXT_RED)
        root.after(INSTALL_RETRY_MS, lambda: _start_background(root, background, app))
        return
    app.start()


def main():
    settings = config.load_settings()
    logging.basicConfig(level=settings.log_level, format=config.LOG_FORMAT)

    root = tk.Tk()
    channel = MessageChannel()
    app = SolatApp(root, settings, channel)

    asset_cache = None
    if settings.asset_origin:
        asset_cache = AssetCache(config.cache_root(), settings.asset_origin, cache_name=settings.cache_name)
    background = BackgroundContext(
        ScheduleStore(config.alarms_path()),
        channel,
        settings=settings,
        asset_cache=asset_cache,
        deliver=app.deliver,
    )
    if asset_cache is not None:
        app.adhan_source = lambda: find_adhan(background.fetch, settings.adhan_file)
    _start_background(root, background, app)
    try:
        root.mainloop()
    finally:
        app.controller.close()
        app.player.stop()
        background.stop()


if __name__ == "__main__":
    main()
