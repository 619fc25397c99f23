import logging
import threading
from datetime import datetime

import tkinter as tk
from tkinter import filedialog, messagebox, simpledialog

from schooltap.constants import (
    APP_NAME,
    APP_VERSION,
    EVENT_IN,
    WINDOW_WIDTH,
    WINDOW_HEIGHT,
    DEFAULT_FONT,
    TITLE_FONT,
    CLOCK_FONT,
)
from schooltap.errors import DuplicateKeyError, SchoolTapError
from schooltap.export import import_students_csv, export_students, export_attendance, export_messages
from schooltap.logic import is_valid_phone
from schooltap.models import EventType, ScanMode, Student
from schooltap.scanner import ScanSession, run_in_background
from schooltap.serial_reader import SerialTagSource, auto_detect_port

logger = logging.getLogger(__name__)

BUTTON_STYLE = {"font": ("Arial", 11), "relief": "raised", "bd": 1, "padx": 8, "pady": 3, "fg": "white"}


class AttendanceApp:
    def __init__(self, master, config, store, processor):
        self.master = master
        self.config = config
        self.store = store
        self.processor = processor
        self.session = None
        self.pending_tag_action = None

        master.title(f"{APP_NAME} {APP_VERSION}")
        master.geometry(f"{WINDOW_WIDTH}x{WINDOW_HEIGHT}")
        master.configure(bg="white")
        master.option_add("*Font", DEFAULT_FONT)

        tk.Label(master, text=APP_NAME, font=TITLE_FONT, fg="#2c3e50", bg="white", pady=10).pack()

        self.clock_label = tk.Label(master, font=CLOCK_FONT, fg="black", bg="white")
        self.clock_label.pack()
        self.update_clock()

        buttons = tk.Frame(master, bg="white")
        buttons.pack(pady=10)

        self.reader_btn = tk.Button(buttons, text="Start Scanning", command=self.toggle_reader,
                                    bg="#16a085", **BUTTON_STYLE)
        self.reader_btn.grid(row=0, column=0, padx=3, pady=3)
        tk.Button(buttons, text="Read Tag", command=self.read_tag,
                  bg="#3498db", **BUTTON_STYLE).grid(row=0, column=1, padx=3, pady=3)
        tk.Button(buttons, text="Register Student", command=self.register_student,
                  bg="#27ae60", **BUTTON_STYLE).grid(row=0, column=2, padx=3, pady=3)

        self.manual_in_btn = tk.Button(buttons, text="Manual Sign In", command=lambda: self.manual_clock(EventType.IN.value),
                                       bg="#2ecc71", **BUTTON_STYLE)
        self.manual_in_btn.grid(row=1, column=0, padx=3, pady=3)
        self.manual_out_btn = tk.Button(buttons, text="Manual Sign Out", command=lambda: self.manual_clock(EventType.OUT.value),
                                        bg="#f39c12", **BUTTON_STYLE)
        self.manual_out_btn.grid(row=1, column=1, padx=3, pady=3)
        tk.Button(buttons, text="Import CSV", command=self.import_csv,
                  bg="#8e44ad", **BUTTON_STYLE).grid(row=1, column=2, padx=3, pady=3)
        tk.Button(buttons, text="Export Excel", command=self.export_data,
                  bg="#d35400", **BUTTON_STYLE).grid(row=1, column=3, padx=3, pady=3)

        settings = self.store.get_settings()
        self.tts_var = tk.BooleanVar(value=settings.tts_enabled)
        self.continuous_var = tk.BooleanVar(value=settings.continuous_scan_enabled)
        self.manual_var = tk.BooleanVar(value=settings.manual_clock_enabled)

        toggles = tk.Frame(master, bg="white")
        toggles.pack(pady=5)
        for text, var in (("Enable TTS", self.tts_var),
                          ("Continuous Scanning", self.continuous_var),
                          ("Manual Clock-In/Out", self.manual_var)):
            tk.Checkbutton(toggles, text=text, variable=var, bg="white",
                           command=self.save_settings).pack(side="left", padx=8)
        self.refresh_manual_buttons()

        self.status_label = tk.Label(master, text="Reader stopped", font=("Arial", 12, "italic"),
                                     fg="#7f8c8d", bg="white")
        self.status_label.pack(pady=5)

        self.result_text = tk.Text(master, height=10, width=80, bg="#ecf0f1", fg="#2c3e50",
                                   relief="flat", state="disabled", wrap="word")
        self.result_text.pack(padx=15, pady=10, fill="both", expand=True)

        master.protocol("WM_DELETE_WINDOW", self.on_close)

    def update_clock(self):
        self.clock_label.config(text=datetime.now().strftime("%I:%M:%S %p"))
        self.master.after(1000, self.update_clock)

    def show(self, text, color="#2c3e50"):
        self.result_text.config(state="normal", fg=color)
        self.result_text.delete("1.0", tk.END)
        self.result_text.insert(tk.END, text)
        self.result_text.config(state="disabled")

    # ==================================================
    # Settings
    # ==================================================

    def save_settings(self):
        settings = self.store.get_settings()
        settings.tts_enabled = self.tts_var.get()
        settings.continuous_scan_enabled = self.continuous_var.get()
        settings.manual_clock_enabled = self.manual_var.get()
        self.store.save_settings(settings)
        self.refresh_manual_buttons()

    def refresh_manual_buttons(self):
        state = "normal" if self.manual_var.get() else "disabled"
        self.manual_in_btn.config(state=state)
        self.manual_out_btn.config(state=state)

    # ==================================================
    # Reader session
    # ==================================================

    def resolve_port(self):
        port = self.config.serial_port or auto_detect_port()
        if port is None:
            messagebox.showerror("Error", "No RFID reader detected. Set SCHOOLTAP_SERIAL_PORT.")
        return port

    def start_session(self, mode, status):
        self.stop_session()
        port = self.resolve_port()
        if port is None:
            return False

        self.session = ScanSession(
            self.processor,
            SerialTagSource(port),
            self.store,
            on_result=lambda result: self.master.after(0, self.on_result, result),
            on_error=lambda error: self.master.after(0, self.on_error, error),
            scheduler=lambda delay, callback: self.master.after(int(delay * 1000), callback),
        )
        try:
            self.session.start(mode)
        except SchoolTapError as e:
            self.session = None
            messagebox.showerror("Error", str(e))
            return False

        self.status_label.config(text=status, fg="#16a085")
        self.reader_btn.config(text="Stop Scanning", bg="#e74c3c")
        return True

    def stop_session(self):
        if self.session is not None:
            self.session.stop()
            self.session = None
        self.status_label.config(text="Reader stopped", fg="#7f8c8d")
        self.reader_btn.config(text="Start Scanning", bg="#16a085")

    def toggle_reader(self):
        if self.session is not None and self.session.running:
            self.stop_session()
            return
        self.pending_tag_action = None
        self.start_session(ScanMode.NORMAL, "Place RFID card near the reader...")

    def on_result(self, result):
        if not (self.session and self.session.running):
            self.stop_session()

        if self.pending_tag_action is not None:
            action, self.pending_tag_action = self.pending_tag_action, None
            action(result.rfid)
            return

        if result.read_only:
            self.master.clipboard_clear()
            self.master.clipboard_append(result.rfid)
            self.show(f"RFID: {result.rfid}\n(copied to clipboard)")
            return

        self.show_result(result)

    def on_error(self, error):
        self.pending_tag_action = None
        if not (self.session and self.session.running):
            self.stop_session()
        self.show(error, color="#c0392b")

    def show_result(self, result):
        student = result.student
        lines = [
            f"RFID: {result.rfid}",
            f"Student: {student.name}",
            f"Admission: {student.admission_number}",
            f"Event: {'Clock In' if result.event == EVENT_IN else 'Clock Out'}"
            + (" (manual)" if result.manual else ""),
        ]
        for delivery in result.deliveries:
            status = "sent" if delivery.sent else f"failed ({delivery.error})"
            lines.append(f"Message to {delivery.phone}: {status}")
        lines.append(f"Message: {result.message}")
        if result.sms_error:
            lines.append(f"SMS Error: {result.sms_error}")
        self.show("\n".join(lines), color="#2c3e50" if result.sms_ok else "#d35400")

    # ==================================================
    # Read-only flows
    # ==================================================

    def read_tag(self, action=None, status="Tap a card to read its RFID..."):
        self.pending_tag_action = action
        self.start_session(ScanMode.READ_ONLY, status)

    def manual_clock(self, event):
        def clock(rfid):
            self.show(f"Signing {event} {rfid}...", color="#2980b9")
            run_in_background(
                lambda: self.processor.clock_manual(rfid, event),
                on_done=self.show_result,
                on_error=self.on_error,
                post=lambda fn: self.master.after(0, fn),
            )

        self.read_tag(clock, f"Tap a card to sign {event} manually...")

    def register_student(self):
        def prompt(rfid):
            name = simpledialog.askstring("Register", f"Student name for {rfid}:", parent=self.master)
            if not name:
                return
            admission = simpledialog.askstring("Register", "Admission number:", parent=self.master) or ""
            phone = simpledialog.askstring("Register", "Parent phone (10 digits):", parent=self.master) or ""
            phone2 = simpledialog.askstring("Register", "Second parent phone (optional):",
                                            parent=self.master) or None
            if not is_valid_phone(phone) or (phone2 and not is_valid_phone(phone2)):
                messagebox.showerror("Error", "Parent phone numbers must be exactly 10 digits.")
                return
            try:
                self.store.register_student(Student(
                    rfid=rfid,
                    name=name.strip(),
                    admission_number=admission.strip(),
                    parent_phone=phone,
                    parent_phone2=phone2,
                ))
            except DuplicateKeyError as e:
                messagebox.showerror("Error", str(e))
                return
            self.show(f"Registered {name} with RFID {rfid}")

        self.read_tag(prompt, "Tap the new student's card...")

    # ==================================================
    # Import / export
    # ==================================================

    def import_csv(self):
        path = filedialog.askopenfilename(filetypes=[("CSV files", "*.csv")])
        if not path:
            return
        try:
            report = import_students_csv(self.store, path)
        except SchoolTapError as e:
            messagebox.showerror("Error", str(e))
            return
        messagebox.showinfo("Import", f"Imported {len(report.imported)} students, skipped {report.skipped}.")

    def export_data(self):
        folder = filedialog.askdirectory()
        if folder:
            threading.Thread(target=self.export_data_thread, args=(folder,), daemon=True).start()

    def export_data_thread(self, folder):
        try:
            paths = [
                export_students(self.store, folder),
                export_attendance(self.store, folder),
                export_messages(self.store, folder),
            ]
        except (SchoolTapError, OSError) as e:
            logger.exception("Export failed")
            error = str(e)
            self.master.after(0, lambda: messagebox.showerror("Error", f"Export failed:\n{error}"))
            return
        self.master.after(0, lambda: messagebox.showinfo("Export", "Saved:\n" + "\n".join(paths)))

    def on_close(self):
        self.stop_session()
        self.master.destroy()
