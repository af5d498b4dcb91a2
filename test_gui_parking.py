import pytest

pytest.importorskip("PyQt5")

from PyQt5.QtCore import QCoreApplication

from gui_parking import ParkingWorker
from ledger_store import SnapshotStore
from parking_ledger import ParkingLedger
from test_parking import FausseHorloge


@pytest.fixture
def worker():
    app = QCoreApplication.instance() or QCoreApplication([])
    horloge = FausseHorloge()
    w = ParkingWorker(ParkingLedger(places_totales=2, horloge=horloge))
    w.horloge = horloge
    w.app = app
    w.logs, w.grille, w.statuts = [], [], []
    w.log_signal.connect(w.logs.append)
    w.update_grid_signal.connect(lambda idx, occ: w.grille.append((idx, occ)))
    w.status_signal.connect(w.statuts.append)
    return w


def test_entree_et_sortie(worker):
    assert worker.entree("AB-123")["space_id"] == 1
    worker.horloge.avancer(1800)
    assert worker.sortie("AB-123")["parking_fee"] == pytest.approx(50.0)
    assert worker.grille == [(1, True), (1, False)]
    assert worker.statuts[-1]["recettes"] == pytest.approx(50.0)


def test_refus_journalise(worker):
    assert worker.sortie("ZZ-999") is None
    assert worker.logs[-1].startswith("[Refus]")
    assert worker.grille == []


def test_suppression_et_affichage(worker):
    worker.entree("AB-123")
    assert len(worker.affichage()) == 1
    worker.suppression("AB-123")
    assert worker.affichage() == []
    assert worker.logs[-1] == "Aucun enregistrement."


def test_echec_sauvegarde_met_a_jour_la_grille(worker, tmp_path):
    worker.entree("AB-123")
    worker.ledger.store = SnapshotStore(tmp_path / "absent" / "parking.json")
    worker.horloge.avancer(3600)

    resultat = worker.sortie("AB-123")
    assert resultat["parking_fee"] == pytest.approx(100.0)
    assert any(l.startswith("[Attention]") for l in worker.logs)
    assert worker.grille[-1] == (1, False)
    assert worker.statuts[-1]["places_libres"] == 2
