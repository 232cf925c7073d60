import os


def get_data_dir():
    # FIELDVAULT_HOME wins; otherwise the working directory, like the desktop app did.
    base = os.environ.get("FIELDVAULT_HOME") or os.getcwd()
    os.makedirs(base, exist_ok=True)
    return base


def get_db_path():
    return os.environ.get("FIELDVAULT_DB") or os.path.join(get_data_dir(), "data.db")


def get_config_path():
    return os.environ.get("FIELDVAULT_CONFIG") or os.path.join(get_data_dir(), "config.json")
