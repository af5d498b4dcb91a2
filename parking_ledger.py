import logging
import threading
import time
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

import parking_config

if TYPE_CHECKING:
    from ledger_store import SnapshotStore


logger = logging.getLogger(__name__)

SECONDES_PAR_HEURE = 3600.0


class ParkingError(Exception):
    """Erreur de base du registre de parking."""


class ValidationError(ParkingError):
    """Immatriculation vide ou invalide."""


class VehicleAlreadyParked(ValidationError):
    """Le véhicule occupe déjà une autre place."""


class CapacityExhausted(ParkingError):
    """Aucune place libre."""


class NotFound(ParkingError):
    """Aucune place ne correspond à l'immatriculation demandée."""


class PersistenceError(ParkingError):
    """
    Échec d'écriture de l'instantané sur disque.

    L'opération reste appliquée en mémoire : son résultat est conservé dans
    ``resultat`` pour que l'appelant puisse continuer sans persistance.
    """

    def __init__(self, message: str, resultat: Optional[Dict] = None) -> None:
        super().__init__(message)
        self.resultat = resultat


def calculer_frais(entree: float, sortie: float, tarif: float) -> float:
    """
    Calcule le montant dû pour une session de stationnement.

    La durée est facturée en heures fractionnaires, sans arrondi. Une durée
    négative (horloge non monotone) est ramenée à zéro.

    Args:
        entree: Horodatage d'entrée (secondes epoch)
        sortie: Horodatage de sortie (secondes epoch)
        tarif: Tarif horaire

    Returns:
        Le montant à payer
    """
    heures = max(0.0, (sortie - entree) / SECONDES_PAR_HEURE)
    return heures * tarif


class ParkingSpace:
    """
    Une place de parking physique.

    Attributes:
        space_id: Identifiant de la place (1..N), fixé à la création
        vehicle_number: Immatriculation du dernier occupant
        entry_time: Horodatage d'entrée, None si jamais utilisée
        exit_time: Horodatage de sortie, None tant que la place est occupée
        parking_fee: Montant calculé à la sortie
        is_occupied: True entre l'entrée et la sortie
    """

    def __init__(self, space_id: int) -> None:
        self.space_id = space_id
        self.reinitialiser()

    def reinitialiser(self) -> None:
        """Remet la place à l'état vierge (l'identifiant est conservé)."""
        self.vehicle_number = ""
        self.entry_time: Optional[float] = None
        self.exit_time: Optional[float] = None
        self.parking_fee = 0.0
        self.is_occupied = False

    @property
    def a_historique(self) -> bool:
        return self.is_occupied or self.exit_time is not None

    def to_dict(self) -> dict:
        return {
            "space_id": self.space_id,
            "vehicle_number": self.vehicle_number,
            "entry_time": self.entry_time,
            "exit_time": self.exit_time,
            "parking_fee": self.parking_fee,
            "is_occupied": self.is_occupied,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ParkingSpace":
        place = cls(data["space_id"])
        place.vehicle_number = data["vehicle_number"]
        place.entry_time = data["entry_time"]
        place.exit_time = data["exit_time"]
        place.parking_fee = data["parking_fee"]
        place.is_occupied = data["is_occupied"]
        return place

    def copie(self) -> "ParkingSpace":
        return ParkingSpace.from_dict(self.to_dict())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParkingSpace):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        etat = "OCCUPEE" if self.is_occupied else "LIBRE"
        return f"ParkingSpace(P-{self.space_id}: {self.vehicle_number or '-'} [{etat}])"


class ParkingLedger:
    """
    Registre des places de parking : entrées, sorties avec calcul du tarif,
    suppressions administratives et historique d'occupation.

    Toutes les opérations publiques sont sérialisées par un verrou unique.
    Si un ``store`` est fourni, l'état complet est rechargé à la création et
    réécrit après chaque opération qui le modifie.

    Attributes:
        places_totales: Nombre de places (fixe)
        tarif_horaire: Tarif appliqué par heure de stationnement
        longueur_max: Longueur maximale d'une immatriculation
        autoriser_doublons: Accepte un véhicule déjà garé ailleurs si True
        store: Stockage des instantanés, ou None (mémoire seule)
    """

    def __init__(self, places_totales: int = parking_config.PLACES_TOTALES,
                 tarif_horaire: float = parking_config.TARIF_HORAIRE,
                 store: Optional["SnapshotStore"] = None,
                 horloge: Callable[[], float] = time.time,
                 longueur_max: int = parking_config.LONGUEUR_MAX_IMMATRICULATION,
                 autoriser_doublons: bool = False) -> None:
        if places_totales < 1:
            raise ValueError(f"places_totales doit être >= 1 (reçu {places_totales})")

        self.places_totales = places_totales
        self.tarif_horaire = tarif_horaire
        self.longueur_max = longueur_max
        self.autoriser_doublons = autoriser_doublons
        self.store = store
        self._horloge = horloge
        self._verrou = threading.RLock()

        self._places: List[ParkingSpace] = [ParkingSpace(i + 1) for i in range(places_totales)]
        if store is not None:
            restaurees = store.load(places_totales, longueur_max=longueur_max,
                                    autoriser_doublons=autoriser_doublons)
            if restaurees is not None:
                self._places = restaurees
                logger.info("[ParkingLedger] État restauré depuis %s.", store.chemin)
        logger.info("[ParkingLedger] Initialisé : %d places, %.2f / heure.",
                    places_totales, tarif_horaire)

    # --- Opérations ---

    def allocate(self, vehicle_number: str) -> Dict:
        """
        Gare un véhicule sur la première place libre (par numéro croissant).

        Args:
            vehicle_number: Immatriculation du véhicule

        Returns:
            {"space_id", "entry_time"}

        Raises:
            ValidationError: immatriculation invalide
            VehicleAlreadyParked: véhicule déjà présent (sauf autoriser_doublons)
            CapacityExhausted: parking complet
            PersistenceError: état modifié mais non sauvegardé (résultat dans ``resultat``)
        """
        self._valider(vehicle_number)
        with self._verrou:
            if not self.autoriser_doublons and self._trouver_occupee(vehicle_number) is not None:
                logger.warning("[ParkingLedger] Refus : %s est déjà garé.", vehicle_number)
                raise VehicleAlreadyParked(f"Le véhicule {vehicle_number} est déjà garé.")

            place = next((p for p in self._places if not p.is_occupied), None)
            if place is None:
                logger.warning("[ParkingLedger] Refus : parking COMPLET (%s).", vehicle_number)
                raise CapacityExhausted("Aucune place disponible.")

            place.reinitialiser()
            place.vehicle_number = vehicle_number
            place.entry_time = self._horloge()
            place.is_occupied = True
            logger.info("[ParkingLedger] Entrée %s sur la place P-%d.",
                        vehicle_number, place.space_id)

            resultat = {"space_id": place.space_id, "entry_time": place.entry_time}
            self._sauvegarder(resultat)
            return resultat

    def release(self, vehicle_number: str) -> Dict:
        """
        Libère la place occupée par le véhicule et calcule le montant dû.

        Returns:
            {"space_id", "vehicle_number", "exit_time", "parking_fee"}

        Raises:
            ValidationError: immatriculation invalide
            NotFound: aucun véhicule garé sous ce numéro
            PersistenceError: état modifié mais non sauvegardé (résultat dans ``resultat``)
        """
        self._valider(vehicle_number)
        with self._verrou:
            place = self._trouver_occupee(vehicle_number)
            if place is None:
                logger.warning("[ParkingLedger] Sortie refusée : %s introuvable.", vehicle_number)
                raise NotFound(f"Le véhicule {vehicle_number} n'est pas dans le parking.")

            # la sortie ne précède jamais l'entrée, même si l'horloge recule
            place.exit_time = max(self._horloge(), place.entry_time)
            place.parking_fee = calculer_frais(place.entry_time, place.exit_time,
                                               self.tarif_horaire)
            place.is_occupied = False
            logger.info("[ParkingLedger] Sortie %s de P-%d. Montant : %.2f",
                        vehicle_number, place.space_id, place.parking_fee)

            resultat = {
                "space_id": place.space_id,
                "vehicle_number": place.vehicle_number,
                "exit_time": place.exit_time,
                "parking_fee": place.parking_fee,
            }
            self._sauvegarder(resultat)
            return resultat

    def delete(self, vehicle_number: str) -> Dict:
        """
        Efface l'enregistrement portant cette immatriculation, garé ou non.

        Aucun montant n'est calculé : c'est une remise à zéro administrative.

        Raises:
            ValidationError: immatriculation invalide
            NotFound: aucune place ne porte ce numéro
            PersistenceError: état modifié mais non sauvegardé (résultat dans ``resultat``)
        """
        self._valider(vehicle_number)
        with self._verrou:
            place = next((p for p in self._places if p.vehicle_number == vehicle_number), None)
            if place is None:
                logger.warning("[ParkingLedger] Suppression refusée : %s introuvable.",
                               vehicle_number)
                raise NotFound(f"Aucun enregistrement pour le véhicule {vehicle_number}.")

            place.reinitialiser()
            logger.info("[ParkingLedger] Enregistrement %s supprimé (P-%d).",
                        vehicle_number, place.space_id)

            resultat = {"space_id": place.space_id, "vehicle_number": vehicle_number}
            self._sauvegarder(resultat)
            return resultat

    def list_spaces(self) -> List[Dict]:
        """Retourne l'historique des places occupées ou déjà libérées, par numéro croissant."""
        with self._verrou:
            return [
                {
                    "space_id": p.space_id,
                    "vehicle_number": p.vehicle_number,
                    "entry_time": p.entry_time,
                    "exit_time": p.exit_time,
                    "still_parked": p.is_occupied,
                    "parking_fee": p.parking_fee,
                }
                for p in self._places if p.a_historique
            ]

    def get_status(self) -> dict:
        """
        Retourne l'état actuel du parking.

        Returns:
            Dictionnaire contenant les statistiques du parking
        """
        with self._verrou:
            occupees = sum(1 for p in self._places if p.is_occupied)
            recettes = sum(p.parking_fee for p in self._places if not p.is_occupied)
            return {
                "places_totales": self.places_totales,
                "places_libres": self.places_totales - occupees,
                "places_occupees": occupees,
                "recettes": recettes,
                "tarif_horaire": self.tarif_horaire,
            }

    @property
    def spaces(self) -> List[ParkingSpace]:
        with self._verrou:
            return [p.copie() for p in self._places]

    def get_space(self, space_id: int) -> ParkingSpace:
        if not 1 <= space_id <= self.places_totales:
            raise NotFound(f"La place P-{space_id} n'existe pas.")
        with self._verrou:
            return self._places[space_id - 1].copie()

    def save(self) -> None:
        """Écrit l'état complet dans le store (sans effet en mémoire seule)."""
        with self._verrou:
            self._sauvegarder()

    # --- Interne ---

    def _valider(self, vehicle_number: str) -> None:
        if not isinstance(vehicle_number, str) or not vehicle_number.strip():
            raise ValidationError("L'immatriculation ne peut pas être vide.")
        if len(vehicle_number) > self.longueur_max:
            raise ValidationError(
                f"L'immatriculation dépasse {self.longueur_max} caractères.")

    def _trouver_occupee(self, vehicle_number: str) -> Optional[ParkingSpace]:
        return next((p for p in self._places
                     if p.is_occupied and p.vehicle_number == vehicle_number), None)

    def _sauvegarder(self, resultat: Optional[Dict] = None) -> None:
        if self.store is None:
            return
        try:
            self.store.save(self._places, tarif_horaire=self.tarif_horaire)
        except OSError as exc:
            logger.error("[ParkingLedger] Sauvegarde impossible : %s", exc)
            raise PersistenceError(f"Impossible d'écrire {self.store.chemin} : {exc}",
                                   resultat=resultat) from exc
