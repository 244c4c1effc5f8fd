from __future__ import annotations

from typing import Final

ROLES: Final[tuple[str, ...]] = ("super_admin", "admin", "user", "guest")
ADMIN_ROLES: Final[frozenset[str]] = frozenset({"super_admin", "admin"})

ROLE_LABELS: Final[dict[str, str]] = {
    "super_admin": "Super Administrateur",
    "admin": "Administrateur",
    "user": "Agent Standard",
    "guest": "Agent Invité",
}

FONCTIONS: Final[tuple[str, ...]] = (
    "Coordonnateur du Projet Mobilier National",
    "Coordonnateur adjoint du Projet Mobilier National",
    "Responsable Administratif et Financier",
    "Comptable",
    "Comptable des matières",
    "Ressources humaines",
    "Pôle programmes et projets",
    "Pôle Passation des marchés",
    "Responsable Courriers",
    "Assistante",
    "Agent d'archive",
    "Développeur web",
)

CATEGORIES: Final[tuple[str, ...]] = (
    "Administrative",
    "Technique",
    "Financière",
    "Légale",
    "Projet",
    "Formation",
    "Communication",
    "Archive",
)

FOLDER_STATUSES: Final[tuple[str, ...]] = ("Archive", "En cours", "Nouveau")
DEFAULT_FOLDER_STATUS: Final[str] = "Archive"

# display_mode -> icon size in px
DISPLAY_MODES: Final[dict[str, int]] = {"very_large": 80, "large": 60, "medium": 40}
DEFAULT_DISPLAY_MODE: Final[str] = "large"

CHANNEL_TYPES: Final[tuple[str, ...]] = ("department", "project", "general")
MESSAGE_TYPES: Final[tuple[str, ...]] = ("text", "file", "image")
PRESENCE_STATUSES: Final[tuple[str, ...]] = ("online", "offline", "away")

EMPTY_ATTACHMENT_CONTENT: Final[str] = "Fichier partagé"
EMPTY_ZIP_README: Final[str] = "Ce dossier ne contient aucun fichier."
SHARED_ZIP_FILENAME: Final[str] = "documents-partages.zip"
