# main.py
import time
from typing import Callable, Optional

import parking_config
from ledger_store import SnapshotStore
from parking_ledger import ParkingError, ParkingLedger, PersistenceError


MENU = """
=== Gestion du Parking ===
1. Entrée véhicule
2. Sortie véhicule
3. Supprimer un enregistrement
4. Afficher les enregistrements
5. Quitter"""


def formater_heure(horodatage: Optional[float]) -> str:
    if horodatage is None:
        return "-"
    return time.strftime("%d/%m/%Y %H:%M:%S", time.localtime(horodatage))


def afficher_enregistrements(ledger: ParkingLedger, sortie: Callable = print) -> None:
    sortie(f"\n{'Place':<8} {'Véhicule':<20} {'Entrée':<20} {'Sortie':<20} {'Montant':>10}")
    sortie("-" * 82)
    for ligne in ledger.list_spaces():
        heure_sortie = "Still Parked" if ligne["still_parked"] else formater_heure(ligne["exit_time"])
        sortie(f"{ligne['space_id']:<8} {ligne['vehicle_number']:<20} "
               f"{formater_heure(ligne['entry_time']):<20} {heure_sortie:<20} "
               f"{ligne['parking_fee']:>10.2f}")


def appeler(operation: Callable, vehicle_number: str, sortie: Callable = print) -> dict:
    """Exécute une opération du registre ; un échec de sauvegarde est signalé sans perdre le résultat."""
    try:
        return operation(vehicle_number)
    except PersistenceError as exc:
        sortie(f"[Attention] {exc} (opération conservée en mémoire)")
        return exc.resultat


def executer_choix(ledger: ParkingLedger, choix: str,
                   saisie: Callable = input, sortie: Callable = print) -> bool:
    """
    Exécute une entrée du menu.

    Returns:
        False si l'utilisateur a demandé à quitter, True sinon
    """
    try:
        if choix == "1":
            resultat = appeler(ledger.allocate, saisie("Immatriculation : ").strip(), sortie)
            sortie(f"[Succès] Véhicule garé sur la place {resultat['space_id']} "
                   f"à {formater_heure(resultat['entry_time'])}.")
        elif choix == "2":
            resultat = appeler(ledger.release, saisie("Immatriculation : ").strip(), sortie)
            sortie(f"[Succès] Véhicule {resultat['vehicle_number']} sorti à "
                   f"{formater_heure(resultat['exit_time'])}.")
            sortie(f">> Montant à payer : {resultat['parking_fee']:.2f}")
        elif choix == "3":
            resultat = appeler(ledger.delete, saisie("Immatriculation à supprimer : ").strip(), sortie)
            sortie(f"[Succès] Enregistrement supprimé (place {resultat['space_id']}).")
        elif choix == "4":
            afficher_enregistrements(ledger, sortie)
        elif choix == "5":
            sortie("Au revoir !")
            return False
        else:
            sortie("Choix invalide, veuillez réessayer.")
    except ParkingError as exc:
        sortie(f"[Erreur] {exc}")
    return True


def main(ledger: Optional[ParkingLedger] = None,
         saisie: Callable = input, sortie: Callable = print) -> None:
    if ledger is None:
        parking_config.configurer_logging()
        ledger = ParkingLedger(store=SnapshotStore(parking_config.FICHIER_DONNEES))

    continuer = True
    while continuer:
        sortie(MENU)
        try:
            choix = saisie("Votre choix : ").strip()
        except EOFError:
            break
        continuer = executer_choix(ledger, choix, saisie, sortie)


if __name__ == "__main__":
    main()
