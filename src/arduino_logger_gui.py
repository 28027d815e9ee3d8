from __future__ import annotations

import argparse
import logging
import queue
from pathlib import Path
from typing import List, Optional, Tuple, Union

import tkinter as tk
from tkinter import ttk, messagebox, filedialog
from tkinter.scrolledtext import ScrolledText

from config_manager import load_settings, parse_ports_argument, save_settings
from event_bus import DataRecord
from event_loop import EventLoop
from file_catalog import LogFileInfo, format_file_size
from logger_app import ArduinoLoggerApp

logger = logging.getLogger(__name__)

UiEvent = Tuple[str, Union[str, DataRecord]]

CSV_FILETYPES = [("CSV Files", "*.csv"), ("All Files", "*.*")]


class ArduinoLoggerGUI(tk.Tk):
    def __init__(self, app: ArduinoLoggerApp) -> None:
        super().__init__()
        self.title("Arduino Logger")
        self.geometry("800x600")

        self._app = app
        # Bus callbacks arrive on the scanner and writer threads.
        self._ui_queue: "queue.Queue[UiEvent]" = queue.Queue()
        app.bus.subscribe_log(lambda text: self._ui_queue.put(("log", text)))
        app.bus.subscribe_data(lambda record: self._ui_queue.put(("data", record)))

        self._header_editor: Optional[tk.Toplevel] = None
        self._browser: Optional[tk.Toplevel] = None

        self._build_ui()
        for message in app.log_messages:
            self._append_log(message)
        self.after(200, self._drain_events)

    def _build_ui(self) -> None:
        self.columnconfigure(0, weight=1)
        self.rowconfigure(2, weight=1)

        top = ttk.Frame(self, padding=10)
        top.grid(row=0, column=0, sticky="ew")
        top.columnconfigure(3, weight=1)

        ttk.Button(top, text="Edit Headers", command=self._open_header_editor).grid(row=0, column=0, padx=(0, 8))
        ttk.Button(top, text="Save CSV As...", command=self._save_current_as).grid(row=0, column=1, padx=(0, 8))
        ttk.Button(top, text="Browse Logs", command=self._open_log_browser).grid(row=0, column=2, padx=(0, 8))

        self._status_var = tk.StringVar(value="Searching for Arduino...")
        ttk.Label(top, textvariable=self._status_var).grid(row=0, column=3, sticky="e")

        last = ttk.LabelFrame(self, text="Last Scanned Data", padding=10)
        last.grid(row=1, column=0, sticky="ew", padx=10)
        self._last_var = tk.StringVar(value="(no data yet)")
        ttk.Label(last, textvariable=self._last_var, font=("TkFixedFont", 11)).grid(row=0, column=0, sticky="w")

        self._log_text = ScrolledText(self, height=20, state="disabled", wrap="word")
        self._log_text.grid(row=2, column=0, sticky="nsew", padx=10, pady=10)

    def _append_log(self, text: str) -> None:
        self._log_text.configure(state="normal")
        self._log_text.insert("end", text + "\n")
        self._log_text.see("end")
        self._log_text.configure(state="disabled")

    def _show_record(self, record: DataRecord) -> None:
        columns = self._app.get_headers()[1:]
        parts: List[str] = []
        for i, value in enumerate(record.fields):
            name = columns[i] if i < len(columns) else f"Field{i + 1}"
            parts.append(f"{name}: {value}")
        stamp = record.timestamp.astimezone().strftime("%H:%M:%S")
        self._last_var.set(f"[{stamp}]  " + "   ".join(parts))

    def _drain_events(self) -> None:
        while True:
            try:
                kind, payload = self._ui_queue.get_nowait()
            except queue.Empty:
                break
            if kind == "log":
                self._append_log(str(payload))
            elif isinstance(payload, DataRecord):
                self._show_record(payload)

        port = self._app.scanner.active_port
        self._status_var.set(f"Connected: {port}" if port else "Searching for Arduino...")
        self.after(200, self._drain_events)

    # Header editor

    def _open_header_editor(self) -> None:
        if self._header_editor is not None:
            self._header_editor.focus()
            return

        win = tk.Toplevel(self)
        win.title("CSV Header Editor")
        win.geometry("600x500")
        win.transient(self)
        self._header_editor = win

        ttk.Label(
            win,
            text="One column per line. The first column is always Timestamp.\n"
                 "Changes apply to the next new log file.",
            padding=10,
        ).pack(anchor="w")

        text = tk.Text(win, height=15)
        text.pack(fill="both", expand=True, padx=10)
        text.insert("1.0", "\n".join(self._app.get_headers()))

        btns = ttk.Frame(win, padding=10)
        btns.pack(fill="x")

        def save() -> None:
            headers = [h for h in text.get("1.0", "end").splitlines() if h.strip()]
            result = self._app.save_headers(headers)
            if not result.success:
                messagebox.showerror("Invalid headers", result.error or "Could not save headers", parent=win)
                return
            close()

        def reset() -> None:
            self._app.reset_headers()
            text.delete("1.0", "end")
            text.insert("1.0", "\n".join(self._app.get_headers()))

        def close() -> None:
            self._header_editor = None
            win.destroy()

        ttk.Button(btns, text="Save", command=save).pack(side="right")
        ttk.Button(btns, text="Reset to Default", command=reset).pack(side="right", padx=8)
        ttk.Button(btns, text="Cancel", command=close).pack(side="left")
        win.protocol("WM_DELETE_WINDOW", close)

    # Export

    def _save_current_as(self) -> None:
        info = self._app.get_current_log_info()
        if info is None:
            messagebox.showwarning("Save CSV", "No CSV file available to save")
            return
        destination = filedialog.asksaveasfilename(
            parent=self,
            title="Save CSV File As",
            initialfile=info.name,
            defaultextension=".csv",
            filetypes=CSV_FILETYPES,
        )
        if not destination:
            return
        result = self._app.save_current_log_as(Path(destination))
        if result.success:
            self._app.log(f"Saved {info.name} to {result.file_path}")
        else:
            messagebox.showerror("Save CSV", result.error or "Save failed")

    def _open_log_browser(self) -> None:
        if self._browser is not None:
            self._browser.focus()
            return

        files = self._app.get_all_log_files()
        if not files:
            messagebox.showinfo("Browse Logs", "No CSV files found in the log directory")
            return

        win = tk.Toplevel(self)
        win.title("Select CSV File to Save")
        win.transient(self)
        self._browser = win

        cols = ("name", "size", "entries", "date")
        tree = ttk.Treeview(win, columns=cols, show="headings", height=10)
        for c, heading, width in zip(cols, ("File", "Size", "Entries", "Date"), (260, 90, 80, 100)):
            tree.heading(c, text=heading)
            tree.column(c, width=width, anchor="w")
        tree.pack(fill="both", expand=True, padx=10, pady=10)

        by_name = {}
        for info in files:
            by_name[info.name] = info
            tree.insert("", "end", iid=info.name, values=self._row_for(info))

        def close() -> None:
            self._browser = None
            win.destroy()

        def save_selected() -> None:
            sel = tree.selection()
            if not sel:
                return
            info = by_name[sel[0]]
            destination = filedialog.asksaveasfilename(
                parent=win,
                title=f"Save {info.name} As",
                initialfile=info.name,
                defaultextension=".csv",
                filetypes=CSV_FILETYPES,
            )
            if not destination:
                return
            result = self._app.save_named_log_as(info.name, Path(destination))
            if result.success:
                self._app.log(f"Saved {result.original_file} to {result.file_path}")
                close()
            else:
                messagebox.showerror("Save CSV", result.error or "Save failed", parent=win)

        btns = ttk.Frame(win, padding=10)
        btns.pack(fill="x")
        ttk.Button(btns, text="Save As...", command=save_selected).pack(side="right")
        ttk.Button(btns, text="Cancel", command=close).pack(side="left")
        win.protocol("WM_DELETE_WINDOW", close)

    @staticmethod
    def _row_for(info: LogFileInfo) -> Tuple[str, str, int, str]:
        return (info.name, format_file_size(info.size), info.entries, info.date)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find an Arduino on a serial port and log its data to CSV.")
    parser.add_argument("--ports", nargs="+", help="Candidate ports in scan order, e.g. COM3 COM4")
    parser.add_argument("--baudrate", type=int, help="Serial baud rate (default from settings, 115200)")
    parser.add_argument("--log-dir", type=Path, help="Directory for arduino_logs_YYYY-MM-DD.csv files")
    parser.add_argument(
        "--save-settings", action="store_true", help="Remember --ports/--baudrate/--log-dir for later runs"
    )
    parser.add_argument("--headless", action="store_true", help="Run without a window; log to the console")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    settings = load_settings()
    ports = parse_ports_argument(args.ports)
    if ports:
        settings.ports = ports
    if args.baudrate:
        settings.baudrate = args.baudrate
    if args.log_dir:
        settings.log_dir = args.log_dir
    if args.save_settings:
        try:
            logger.info(f"Settings saved to {save_settings(settings)}")
        except OSError as e:
            logger.warning(f"Could not save settings: {e}")

    loop = EventLoop()
    app = ArduinoLoggerApp(settings, loop)
    logger.info(f"Scanning {', '.join(settings.ports)} at {settings.baudrate} baud")
    app.start()

    if args.headless:
        try:
            loop.run_forever()
        except KeyboardInterrupt:
            logger.info("Stopping...")
        finally:
            # The loop is no longer running; stop on this thread.
            app.scanner.stop()
            app.writer.close()
        return

    loop.start()
    gui = ArduinoLoggerGUI(app)

    def on_close() -> None:
        app.shutdown()
        loop.stop()
        gui.destroy()

    gui.protocol("WM_DELETE_WINDOW", on_close)
    gui.mainloop()


if __name__ == "__main__":
    main()
