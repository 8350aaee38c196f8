from models.class_series import ClassSeries
from models.class_session import ClassSession
from models.class_type import ClassType
from models.scheduling_config import BranchSchedulingConfig, SchedulingConfig
from models.scheduling_warning import SchedulingWarning
from models.user_availability import UserAvailability
from models.vacation import Vacation

__all__ = [
	"BranchSchedulingConfig",
	"ClassSeries",
	"ClassSession",
	"ClassType",
	"SchedulingConfig",
	"SchedulingWarning",
	"UserAvailability",
	"Vacation",
]
