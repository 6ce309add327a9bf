"""gridedit — reversible, replayable structural edits for tabular projects."""

__version__ = "0.3.0"

from gridedit.changes import (
    Change as Change,
    LineReader as LineReader,
    MassRowColumnChange as MassRowColumnChange,
    load_change as load_change,
    register_change as register_change,
    save_change as save_change,
)
from gridedit.changelog import HistoryLog as HistoryLog
from gridedit.config import (
    WorkspaceConfig as WorkspaceConfig,
    load_config as load_config,
)
from gridedit.exceptions import (
    ChangeLoadError as ChangeLoadError,
    ChangeStateError as ChangeStateError,
    ConfigError as ConfigError,
    DuplicateProjectError as DuplicateProjectError,
    GridEditError as GridEditError,
    HistoryError as HistoryError,
    ProjectNotFoundError as ProjectNotFoundError,
)
from gridedit.history import History as History, HistoryEntry as HistoryEntry
from gridedit.interproject import (
    InterProjectModel as InterProjectModel,
    ProjectJoin as ProjectJoin,
)
from gridedit.models import (
    Cell as Cell,
    ColumnMetadata as ColumnMetadata,
    Judgment as Judgment,
    Recon as Recon,
    Row as Row,
    columns_from_names as columns_from_names,
)
from gridedit.project import Project as Project, ProjectSnapshot as ProjectSnapshot
from gridedit.workspace import Workspace as Workspace

__all__ = [
    # Grid records
    "Cell",
    "ColumnMetadata",
    "Judgment",
    "Recon",
    "Row",
    "columns_from_names",
    # Project and joins
    "Project",
    "ProjectSnapshot",
    "InterProjectModel",
    "ProjectJoin",
    # Changes
    "Change",
    "LineReader",
    "MassRowColumnChange",
    "load_change",
    "register_change",
    "save_change",
    # History
    "History",
    "HistoryEntry",
    "HistoryLog",
    # Workspace and configuration
    "Workspace",
    "WorkspaceConfig",
    "load_config",
    # Exceptions
    "GridEditError",
    "ChangeLoadError",
    "ChangeStateError",
    "ConfigError",
    "DuplicateProjectError",
    "HistoryError",
    "ProjectNotFoundError",
]
