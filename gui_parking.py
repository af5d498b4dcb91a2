import sys
import time

from PyQt5.QtWidgets import (QApplication, QMainWindow, QWidget, QVBoxLayout,
                             QHBoxLayout, QGridLayout, QLabel, QPushButton,
                             QTextEdit, QFrame, QLineEdit, QScrollArea)
from PyQt5.QtCore import Qt, pyqtSignal, QObject, QTimer
from PyQt5.QtGui import QFont

import parking_config
from ledger_store import SnapshotStore
from main import formater_heure
from parking_ledger import ParkingError, ParkingLedger, PersistenceError

COLONNES_GRILLE = 10

STYLE_LIBRE = """
    background-color: #10b981;
    color: white;
    border-radius: 8px;
    border: 2px solid #059669;
"""
STYLE_OCCUPEE = """
    background-color: #f43f5e;
    color: white;
    border-radius: 8px;
    border: 2px solid #e11d48;
    font-size: 11px;
"""


# --- CLASS 1 : WORKER (Appels au registre) ---
class ParkingWorker(QObject):
    log_signal = pyqtSignal(str)
    status_signal = pyqtSignal(dict)
    update_grid_signal = pyqtSignal(int, bool)  # int=space_id, bool=occupée

    def __init__(self, ledger):
        super().__init__()
        self.ledger = ledger

    def log(self, message):
        self.log_signal.emit(message)

    def _executer(self, operation, vehicle_number):
        try:
            return operation(vehicle_number.strip())
        except PersistenceError as exc:
            # opération appliquée en mémoire : on l'affiche quand même
            self.log(f"[Attention] {exc}")
            return exc.resultat
        except ParkingError as exc:
            self.log(f"[Refus] {exc}")
            return None

    def entree(self, vehicle_number):
        resultat = self._executer(self.ledger.allocate, vehicle_number)
        if resultat is None:
            return None
        self.log(f"--- 🚗 Entrée {vehicle_number.strip()} (Place P-{resultat['space_id']}) "
                 f"à {formater_heure(resultat['entry_time'])} ---")
        self.update_grid_signal.emit(resultat["space_id"], True)
        self.update_status()
        return resultat

    def sortie(self, vehicle_number):
        resultat = self._executer(self.ledger.release, vehicle_number)
        if resultat is None:
            return None
        self.log(f"--- 🛑 Sortie {resultat['vehicle_number']} (Place P-{resultat['space_id']}) "
                 f"à {formater_heure(resultat['exit_time'])}. "
                 f"Facture : {resultat['parking_fee']:.2f} ---")
        self.update_grid_signal.emit(resultat["space_id"], False)
        self.update_status()
        return resultat

    def suppression(self, vehicle_number):
        resultat = self._executer(self.ledger.delete, vehicle_number)
        if resultat is None:
            return None
        self.log(f"--- ✖ Enregistrement {resultat['vehicle_number']} supprimé "
                 f"(Place P-{resultat['space_id']}) ---")
        self.update_grid_signal.emit(resultat["space_id"], False)
        self.update_status()
        return resultat

    def affichage(self):
        lignes = self.ledger.list_spaces()
        if not lignes:
            self.log("Aucun enregistrement.")
        for ligne in lignes:
            heure_sortie = "Still Parked" if ligne["still_parked"] else formater_heure(ligne["exit_time"])
            self.log(f"P-{ligne['space_id']} | {ligne['vehicle_number']} | "
                     f"{formater_heure(ligne['entry_time'])} | {heure_sortie} | "
                     f"{ligne['parking_fee']:.2f}")
        return lignes

    def update_status(self):
        self.status_signal.emit(self.ledger.get_status())


# --- CLASS 2 : DASHBOARD ---
class ParkingDashboard(QMainWindow):
    def __init__(self, ledger):
        super().__init__()
        self.setWindowTitle("Parking Management System")
        self.setGeometry(100, 100, 1200, 800)

        self.setStyleSheet("""
            QMainWindow { background-color: #0f172a; }
            QLabel { color: white; font-family: 'Segoe UI', sans-serif; }
            QPushButton {
                background-color: #334155;
                color: white;
                border: none;
                padding: 12px;
                border-radius: 8px;
                font-family: 'Segoe UI', sans-serif;
                font-weight: bold;
                font-size: 14px;
            }
            QPushButton:hover { background-color: #475569; }
            QPushButton:pressed { background-color: #1e293b; }
            QLineEdit {
                background-color: #1e293b;
                color: white;
                border: 1px solid #475569;
                border-radius: 6px;
                padding: 8px;
                font-size: 14px;
            }
        """)

        self.worker = ParkingWorker(ledger)
        self.worker.log_signal.connect(self.append_log)
        self.worker.status_signal.connect(self.update_dashboard)
        self.worker.update_grid_signal.connect(self.update_place)

        self.init_ui()
        for place in ledger.spaces:
            self.update_place(place.space_id, place.is_occupied)
        self.worker.update_status()

        self.timer_clock = QTimer(self)
        self.timer_clock.timeout.connect(self.update_clocks)
        self.timer_clock.start(1000)

    def init_ui(self):
        main = QWidget()
        self.setCentralWidget(main)
        layout = QVBoxLayout(main)
        layout.setSpacing(20)
        layout.setContentsMargins(20, 20, 20, 20)

        # 1. KPI SECTION
        kpi_layout = QHBoxLayout()
        kpi_layout.setSpacing(15)
        self.card_money = self.create_kpi_card("RECETTES", "0.00", "#f59e0b")
        self.card_free = self.create_kpi_card("PLACES LIBRES", "0", "#10b981")
        self.card_busy = self.create_kpi_card("PLACES OCCUPÉES", "0", "#3b82f6")
        kpi_layout.addWidget(self.card_money)
        kpi_layout.addWidget(self.card_free)
        kpi_layout.addWidget(self.card_busy)
        kpi_layout.addStretch()
        layout.addLayout(kpi_layout)

        # 2. GRILLE DES PLACES
        grid_frame = QFrame()
        grid_frame.setStyleSheet("background-color: #1e293b; border-radius: 12px;")
        grid_layout = QGridLayout(grid_frame)
        grid_layout.setSpacing(10)
        grid_layout.setContentsMargins(15, 15, 15, 15)
        self.places_widgets = {}

        for place in self.worker.ledger.spaces:
            i = place.space_id - 1
            lbl = QLabel(f"P-{place.space_id}\nLIBRE")
            lbl.setAlignment(Qt.AlignCenter)
            lbl.setFixedSize(100, 60)
            lbl.setFont(QFont("Segoe UI", 9, QFont.Bold))
            lbl.setStyleSheet(STYLE_LIBRE)
            grid_layout.addWidget(lbl, i // COLONNES_GRILLE, i % COLONNES_GRILLE)
            self.places_widgets[place.space_id] = lbl

        scroll = QScrollArea()
        scroll.setWidget(grid_frame)
        scroll.setWidgetResizable(True)
        layout.addWidget(scroll, 2)

        # 3. SAISIE & CONSOLE
        bottom = QHBoxLayout()
        btns = QVBoxLayout()
        btns.setSpacing(10)

        self.champ_immatriculation = QLineEdit()
        self.champ_immatriculation.setPlaceholderText("Immatriculation")
        self.champ_immatriculation.setMaxLength(self.worker.ledger.longueur_max)

        b_entree = QPushButton("🎫  Entrée")
        b_entree.setStyleSheet("border-left: 4px solid #3b82f6;")
        b_entree.clicked.connect(lambda: self.worker.entree(self.champ_immatriculation.text()))

        b_sortie = QPushButton("🛑  Sortie")
        b_sortie.setStyleSheet("border-left: 4px solid #f43f5e;")
        b_sortie.clicked.connect(lambda: self.worker.sortie(self.champ_immatriculation.text()))

        b_suppr = QPushButton("✖  Supprimer")
        b_suppr.setStyleSheet("border-left: 4px solid #f59e0b;")
        b_suppr.clicked.connect(lambda: self.worker.suppression(self.champ_immatriculation.text()))

        b_affichage = QPushButton("📋  Afficher")
        b_affichage.setStyleSheet("border: 1px solid #475569;")
        b_affichage.clicked.connect(self.worker.affichage)

        btns.addWidget(self.champ_immatriculation)
        btns.addWidget(b_entree)
        btns.addWidget(b_sortie)
        btns.addWidget(b_suppr)
        btns.addSpacing(15)
        btns.addWidget(b_affichage)
        btns.addStretch()

        self.logs = QTextEdit()
        self.logs.setReadOnly(True)
        self.logs.setStyleSheet("""
            QTextEdit {
                background-color: rgba(30, 41, 59, 0.7);
                color: #10b981;
                font-family: 'Consolas', 'Courier New', monospace;
                font-size: 13px;
                border: 1px solid #475569;
                border-radius: 8px;
                padding: 10px;
            }
        """)

        bottom.addLayout(btns, 1)
        bottom.addWidget(self.logs, 3)
        layout.addLayout(bottom, 1)

    def create_kpi_card(self, title, value, base_color):
        frame = QFrame()
        # .QFrame cible le cadre seul, pas les QLabel enfants
        frame.setStyleSheet(f"""
            .QFrame {{
                background-color: qlineargradient(x1:0, y1:0, x2:0, y2:1, stop:0 {base_color}, stop:1 #1e293b);
                border-radius: 10px;
                border: 1px solid {base_color};
            }}
            QLabel {{
                border: none;
                background: transparent;
            }}
        """)
        frame.setFixedSize(180, 85)

        vbox = QVBoxLayout(frame)
        vbox.setContentsMargins(15, 10, 15, 10)

        l_title = QLabel(title)
        l_title.setFont(QFont("Segoe UI", 9, QFont.Bold))
        l_title.setStyleSheet("color: rgba(255, 255, 255, 180);")

        l_val = QLabel(value)
        l_val.setFont(QFont("Segoe UI", 18, QFont.Bold))
        l_val.setStyleSheet("color: white;")
        l_val.setAlignment(Qt.AlignLeft | Qt.AlignVCenter)

        vbox.addWidget(l_title)
        vbox.addWidget(l_val)
        return frame

    def update_dashboard(self, stats):
        self.card_money.findChildren(QLabel)[1].setText(f"{stats.get('recettes', 0.0):.2f}")
        self.card_free.findChildren(QLabel)[1].setText(str(stats.get("places_libres", 0)))
        self.card_busy.findChildren(QLabel)[1].setText(str(stats.get("places_occupees", 0)))

    def append_log(self, text):
        self.logs.append(text)
        self.logs.verticalScrollBar().setValue(self.logs.verticalScrollBar().maximum())

    def update_place(self, space_id, occupee):
        widget = self.places_widgets[space_id]
        if occupee:
            widget.setStyleSheet(STYLE_OCCUPEE)
        else:
            widget.setStyleSheet(STYLE_LIBRE)
            widget.setText(f"P-{space_id}\nLIBRE")

    def update_clocks(self):
        maintenant = time.time()
        for place in self.worker.ledger.spaces:
            if not place.is_occupied:
                continue
            duree = max(0, int(maintenant - place.entry_time))
            mm, ss = divmod(duree, 60)
            hh, mm = divmod(mm, 60)
            self.places_widgets[place.space_id].setText(
                f"P-{place.space_id} | {place.vehicle_number}\n{hh:02d}:{mm:02d}:{ss:02d}")


if __name__ == "__main__":
    parking_config.configurer_logging()
    app = QApplication(sys.argv)
    ledger = ParkingLedger(store=SnapshotStore(parking_config.FICHIER_DONNEES))
    window = ParkingDashboard(ledger)
    window.show()
    sys.exit(app.exec_())
