"""
Configuration du gestionnaire de parking.

Chaque paramètre peut être surchargé par une variable d'environnement.
"""

import logging
import os


# ================================
# Parking
# ================================
PLACES_TOTALES = int(os.getenv("PARKING_PLACES", "50"))          # Nombre de places
TARIF_HORAIRE = float(os.getenv("PARKING_TARIF", "100.0"))       # Tarif par heure
LONGUEUR_MAX_IMMATRICULATION = int(os.getenv("PARKING_LONGUEUR_MAX", "19"))

# ================================
# Persistance
# ================================
FICHIER_DONNEES = os.getenv("PARKING_DATA_FILE", "parking_data.json")

# ================================
# Journalisation
# ================================
LOG_LEVEL = os.getenv("PARKING_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configurer_logging(niveau: str = LOG_LEVEL) -> None:
    """Configure la journalisation de l'application (console)."""
    logging.basicConfig(level=getattr(logging, niveau.upper(), logging.INFO),
                        format=LOG_FORMAT)
