import json
import os

import pytest

from ledger_store import SnapshotStore
from parking_ledger import ParkingLedger, PersistenceError
from test_parking import FausseHorloge


def parking_persistant(chemin, places=4, horloge=None):
    return ParkingLedger(places_totales=places, tarif_horaire=100.0,
                         store=SnapshotStore(chemin), horloge=horloge or FausseHorloge())


def test_fichier_absent(tmp_path):
    p = parking_persistant(tmp_path / "parking.json")
    assert p.list_spaces() == []
    assert not (tmp_path / "parking.json").exists()


def test_restauration_complete(tmp_path):
    chemin = tmp_path / "parking.json"
    horloge = FausseHorloge()
    p = parking_persistant(chemin, horloge=horloge)
    p.allocate("AA-111")
    p.allocate("BB-222")
    p.allocate("CC-333")
    horloge.avancer(4000)
    p.release("BB-222")

    recharge = parking_persistant(chemin)
    assert recharge.spaces == p.spaces
    assert recharge.list_spaces() == p.list_spaces()


def test_sauvegarde_apres_chaque_operation(tmp_path):
    chemin = tmp_path / "parking.json"
    p = parking_persistant(chemin)
    p.allocate("AA-111")
    assert json.loads(chemin.read_text())["spaces"][0]["is_occupied"] is True
    p.release("AA-111")
    assert json.loads(chemin.read_text())["spaces"][0]["is_occupied"] is False
    p.delete("AA-111")
    assert json.loads(chemin.read_text())["spaces"][0]["vehicle_number"] == ""


def test_format_versionne(tmp_path):
    chemin = tmp_path / "parking.json"
    parking_persistant(chemin, places=3).allocate("AA-111")
    document = json.loads(chemin.read_text())
    assert document["format"] == "parking-ledger"
    assert document["version"] == 1
    assert document["places_totales"] == 3
    assert [s["space_id"] for s in document["spaces"]] == [1, 2, 3]


def test_pas_de_fichier_temporaire_restant(tmp_path):
    chemin = tmp_path / "parking.json"
    p = parking_persistant(chemin)
    p.allocate("AA-111")
    p.allocate("BB-222")
    assert os.listdir(tmp_path) == ["parking.json"]


@pytest.mark.parametrize("contenu", [
    "pas du json",
    "[]",
    '{"format": "parking-ledger", "version": 99, "spaces": []}',
    '{"format": "autre", "version": 1, "spaces": []}',
    "[" * 100000 + "]" * 100000,
])
def test_fichier_corrompu_registre_vierge(tmp_path, contenu):
    chemin = tmp_path / "parking.json"
    chemin.write_text(contenu)
    p = parking_persistant(chemin)
    assert p.list_spaces() == []
    assert len(p.spaces) == 4


def test_capacite_differente(tmp_path):
    chemin = tmp_path / "parking.json"
    parking_persistant(chemin, places=4).allocate("AA-111")
    p = parking_persistant(chemin, places=6)
    assert p.list_spaces() == []
    assert len(p.spaces) == 6


def test_enregistrement_incoherent(tmp_path):
    chemin = tmp_path / "parking.json"
    parking_persistant(chemin, places=2).allocate("AA-111")
    document = json.loads(chemin.read_text())
    document["spaces"][0]["entry_time"] = None
    chemin.write_text(json.dumps(document))
    assert parking_persistant(chemin, places=2).list_spaces() == []

    document["spaces"][0]["entry_time"] = 10.0
    document["spaces"][1]["space_id"] = 7
    chemin.write_text(json.dumps(document))
    assert parking_persistant(chemin, places=2).list_spaces() == []


def test_echec_ecriture(tmp_path):
    p = parking_persistant(tmp_path / "absent" / "parking.json")
    with pytest.raises(PersistenceError):
        p.allocate("AA-111")
    # l'opération reste appliquée en mémoire
    assert p.get_space(1).is_occupied


def test_save_sans_store():
    p = ParkingLedger(places_totales=2)
    p.allocate("AA-111")
    p.save()


def ecrire_instantane(chemin, modifier):
    parking_persistant(chemin, places=3).allocate("AA-111")
    document = json.loads(chemin.read_text())
    modifier(document["spaces"])
    chemin.write_text(json.dumps(document))


def garer_deux_fois(spaces):
    spaces[1].update(vehicle_number="AA-111", entry_time=20.0, is_occupied=True)


def immatriculation_trop_longue(spaces):
    spaces[0]["vehicle_number"] = "X" * 20


def sortie_sans_entree(spaces):
    spaces[1].update(vehicle_number="BB-222", exit_time=50.0)


def sortie_avant_entree(spaces):
    spaces[1].update(vehicle_number="BB-222", entry_time=100.0, exit_time=50.0)


@pytest.mark.parametrize("modifier", [
    garer_deux_fois, immatriculation_trop_longue, sortie_sans_entree, sortie_avant_entree,
])
def test_invariants_verifies_au_chargement(tmp_path, modifier):
    chemin = tmp_path / "parking.json"
    ecrire_instantane(chemin, modifier)
    assert parking_persistant(chemin, places=3).list_spaces() == []


def test_doublon_accepte_si_autorise(tmp_path):
    chemin = tmp_path / "parking.json"
    ecrire_instantane(chemin, garer_deux_fois)
    p = ParkingLedger(places_totales=3, store=SnapshotStore(chemin), autoriser_doublons=True)
    assert [l["vehicle_number"] for l in p.list_spaces()] == ["AA-111", "AA-111"]


def test_echec_ecriture_conserve_le_montant(tmp_path):
    horloge = FausseHorloge()
    p = parking_persistant(tmp_path / "parking.json", horloge=horloge)
    p.allocate("AA-111")
    p.store = SnapshotStore(tmp_path / "absent" / "parking.json")
    horloge.avancer(3600)

    with pytest.raises(PersistenceError) as erreur:
        p.release("AA-111")
    assert erreur.value.resultat["space_id"] == 1
    assert erreur.value.resultat["parking_fee"] == pytest.approx(100.0)
    assert not p.get_space(1).is_occupied

    # sauvegarde rétablie : le registre peut être réécrit
    p.store = SnapshotStore(tmp_path / "parking.json")
    p.save()
    assert parking_persistant(tmp_path / "parking.json").spaces == p.spaces
