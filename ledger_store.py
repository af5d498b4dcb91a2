import json
import logging
import os
import tempfile
from typing import List, Optional

from parking_ledger import ParkingSpace


logger = logging.getLogger(__name__)

FORMAT_INSTANTANE = "parking-ledger"
VERSION_INSTANTANE = 1

_CHAMPS = {
    "space_id": (int,),
    "vehicle_number": (str,),
    "entry_time": (int, float, type(None)),
    "exit_time": (int, float, type(None)),
    "parking_fee": (int, float),
    "is_occupied": (bool,),
}


class SnapshotCorrompu(ValueError):
    """Instantané illisible ou incohérent."""


class SnapshotStore:
    """
    Stockage de l'état complet du registre dans un fichier JSON versionné.

    Chaque sauvegarde réécrit tout le fichier : écriture dans un fichier
    temporaire du même répertoire puis ``os.replace``.

    Attributes:
        chemin: Chemin du fichier d'instantané
    """

    def __init__(self, chemin: str) -> None:
        self.chemin = os.fspath(chemin)

    def save(self, places: List[ParkingSpace], tarif_horaire: Optional[float] = None) -> None:
        """
        Écrit l'instantané de manière atomique.

        Raises:
            OSError: écriture impossible (le fichier précédent reste intact)
        """
        document = {
            "format": FORMAT_INSTANTANE,
            "version": VERSION_INSTANTANE,
            "places_totales": len(places),
            "tarif_horaire": tarif_horaire,
            "spaces": [p.to_dict() for p in places],
        }
        repertoire = os.path.dirname(os.path.abspath(self.chemin))
        fd, temporaire = tempfile.mkstemp(prefix=".parking-", suffix=".tmp", dir=repertoire)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=1)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temporaire, self.chemin)
        except BaseException:
            if os.path.exists(temporaire):
                os.unlink(temporaire)
            raise
        logger.debug("[SnapshotStore] %d places écrites dans %s.", len(places), self.chemin)

    def load(self, places_totales: int, longueur_max: Optional[int] = None,
             autoriser_doublons: bool = True) -> Optional[List[ParkingSpace]]:
        """
        Relit l'instantané complet.

        Args:
            places_totales: Nombre de places attendu
            longueur_max: Longueur maximale d'une immatriculation (None : pas de limite)
            autoriser_doublons: Accepte deux places occupées par le même véhicule

        Returns:
            La liste des places, ou None si le fichier est absent ou inutilisable
        """
        if not os.path.exists(self.chemin):
            logger.info("[SnapshotStore] Aucun instantané (%s) : registre vierge.", self.chemin)
            return None
        try:
            with open(self.chemin, "r", encoding="utf-8") as f:
                document = json.load(f)
            return self._decoder(document, places_totales, longueur_max, autoriser_doublons)
        except (OSError, ValueError, RecursionError) as exc:
            logger.warning("[SnapshotStore] Instantané %s ignoré : %s", self.chemin, exc)
            return None

    @staticmethod
    def _decoder(document, places_totales: int, longueur_max: Optional[int] = None,
                 autoriser_doublons: bool = True) -> List[ParkingSpace]:
        if not isinstance(document, dict):
            raise SnapshotCorrompu("document JSON inattendu")
        if document.get("format") != FORMAT_INSTANTANE:
            raise SnapshotCorrompu(f"format inconnu {document.get('format')!r}")
        if document.get("version") != VERSION_INSTANTANE:
            raise SnapshotCorrompu(f"version non supportée {document.get('version')!r}")

        enregistrements = document.get("spaces")
        if not isinstance(enregistrements, list) or len(enregistrements) != places_totales:
            raise SnapshotCorrompu(f"{places_totales} places attendues")

        places = []
        garees = set()
        for position, data in enumerate(enregistrements):
            if not isinstance(data, dict):
                raise SnapshotCorrompu(f"enregistrement {position} invalide")
            for champ, types in _CHAMPS.items():
                valeur = data.get(champ, ...)
                # bool est un int : on ne l'accepte que pour is_occupied
                if not isinstance(valeur, types) or (isinstance(valeur, bool) and bool not in types):
                    raise SnapshotCorrompu(f"champ {champ} invalide (place {position + 1})")
            if data["space_id"] != position + 1:
                raise SnapshotCorrompu(f"identifiant {data['space_id']} hors séquence")
            if data["is_occupied"] and (data["entry_time"] is None or data["exit_time"] is not None):
                raise SnapshotCorrompu(f"session incohérente (place {position + 1})")
            if data["exit_time"] is not None and (
                    data["entry_time"] is None or data["exit_time"] < data["entry_time"]):
                raise SnapshotCorrompu(f"sortie antérieure à l'entrée (place {position + 1})")
            if longueur_max is not None and len(data["vehicle_number"]) > longueur_max:
                raise SnapshotCorrompu(f"immatriculation trop longue (place {position + 1})")
            if data["is_occupied"] and not autoriser_doublons:
                if data["vehicle_number"] in garees:
                    raise SnapshotCorrompu(f"{data['vehicle_number']} garé sur deux places")
                garees.add(data["vehicle_number"])
            places.append(ParkingSpace.from_dict(data))
        return places
