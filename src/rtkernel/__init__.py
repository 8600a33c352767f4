"""rtkernel - build, install and verify PREEMPT_RT Linux kernels from declarative project files."""

from . import options as options
from .blueprints import Blueprint as Blueprint
from .build import PackageSet as PackageSet
from .context import Context as Context
from .errors import ArtifactError as ArtifactError
from .errors import CommandError as CommandError
from .errors import ConfigurationError as ConfigurationError
from .errors import PreconditionError as PreconditionError
from .errors import RTKernelError as RTKernelError
from .errors import SourceError as SourceError
from .kconfig import KernelConfig as KernelConfig
from .options import ConfigOption as ConfigOption
from .projects import Project as Project
from .projects import RemoteTarget as RemoteTarget
from .runner import Runner as Runner
from .spec import Specification as Specification
from .spec import spec as spec
from .specop import Absent as Absent
from .specop import Ensure as Ensure
from .specop import Present as Present
from .specop import SpecOp as SpecOp
from .workspace import Workspace as Workspace
