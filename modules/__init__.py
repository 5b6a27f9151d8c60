"""Scheduling problem modules (weekly branch timetables, manual edits)."""

from .errors import (
	IllegalManualMove,
	InsufficientInputData,
	NoRoomAvailable,
	SchedulingError,
)

from .timetable_ga import (
	AcademicWeek,
	Branch,
	FitnessWeights,
	Gene,
	Individual,
	ReferenceData,
	Room,
	RoomType,
	Subject,
	Teacher,
	TimetableProblem,
	calculate_fitness,
	create_random_individual,
	crossover,
	evaluate_schedule,
	is_lab_subject,
	load_timetable_problem_from_json,
	mutate,
	room_matches,
	run,
	solve_timetable,
)

from .manual_edit import MoveDelta, MoveResult, ScheduleEditor

__all__ = [
	"IllegalManualMove",
	"InsufficientInputData",
	"NoRoomAvailable",
	"SchedulingError",
	"AcademicWeek",
	"Branch",
	"FitnessWeights",
	"Gene",
	"Individual",
	"ReferenceData",
	"Room",
	"RoomType",
	"Subject",
	"Teacher",
	"TimetableProblem",
	"calculate_fitness",
	"create_random_individual",
	"crossover",
	"evaluate_schedule",
	"is_lab_subject",
	"load_timetable_problem_from_json",
	"mutate",
	"room_matches",
	"run",
	"solve_timetable",
	"MoveDelta",
	"MoveResult",
	"ScheduleEditor",
]
