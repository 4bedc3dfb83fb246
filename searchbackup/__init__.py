from .config import IndexHandle as IndexHandle, TransferConfig as TransferConfig, load_config as load_config
from .transfer import IndexBackupRestore as IndexBackupRestore

__version__ = "1.0.0"
