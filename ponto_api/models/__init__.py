# ponto_api/models/__init__.py
import importlib
import pkgutil


def load_all():
    """Import every model module so the tables land on db.metadata (migrations, create_all)."""
    for mod in pkgutil.iter_modules(__path__):
        if not mod.name.startswith("_"):
            importlib.import_module(f"{__name__}.{mod.name}")
