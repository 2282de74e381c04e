"""
Request body models. Every write endpoint validates its JSON body through one
of these and reports the first error as a 400.
"""

import re
from typing import ClassVar, List, Literal, Optional

from flask import request
from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator, model_validator

from .errors import BadRequest

RoomType = Literal['CLASSROOM', 'LAB', 'AUDITORIUM', 'SEMINAR_HALL']
SubjectType = Literal['THEORY', 'PRACTICAL', 'TUTORIAL']
Day = Literal['MONDAY', 'TUESDAY', 'WEDNESDAY', 'THURSDAY', 'FRIDAY', 'SATURDAY']
Role = Literal['ADMIN', 'TEACHER', 'STUDENT']

TIME_RE = re.compile(r'^([01]?[0-9]|2[0-3]):([0-5][0-9])$')


def normalize_time(value):
    """Validates an HH:MM string and zero-pads the hour."""
    if value is None:
        return value
    match = TIME_RE.match(value)
    if not match:
        raise ValueError('Invalid time format (HH:MM)')
    return f'{int(match.group(1)):02d}:{match.group(2)}'


def to_minutes(value):
    hours, minutes = value.split(':')
    return int(hours) * 60 + int(minutes)


def first_error_message(exc: ValidationError) -> str:
    err = exc.errors()[0]
    if err['type'] == 'value_error' and 'error' in err.get('ctx', {}):
        msg = str(err['ctx']['error'])
    else:
        msg = err['msg']
    loc = '.'.join(str(part) for part in err['loc'])
    return f'{loc}: {msg}' if loc else msg


def parse_body(model, data=None):
    if data is None:
        data = request.get_json(silent=True)
    if data is None:
        data = {}
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise BadRequest(first_error_message(e))


class RequestModel(BaseModel):
    model_config = ConfigDict(extra='ignore', str_strip_whitespace=True)


class PatchModel(RequestModel):
    """Partial update. Fields left out are untouched; listed fields may not be set to null."""

    non_nullable: ClassVar[tuple] = ()

    @model_validator(mode='after')
    def reject_nulls(self):
        for name in self.non_nullable:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f'{name} cannot be null')
        return self

    def changes(self):
        return self.model_dump(exclude_unset=True)


# --- ROOMS ---
class RoomCreate(RequestModel):
    name: str = Field(min_length=1)
    capacity: int = Field(gt=0)
    room_type: RoomType = 'CLASSROOM'
    building: Optional[str] = None
    floor: Optional[int] = None
    is_available: bool = True


class RoomUpdate(PatchModel):
    non_nullable: ClassVar[tuple] = ('name', 'capacity', 'room_type', 'is_available')

    name: Optional[str] = Field(default=None, min_length=1)
    capacity: Optional[int] = Field(default=None, gt=0)
    room_type: Optional[RoomType] = None
    building: Optional[str] = None
    floor: Optional[int] = None
    is_available: Optional[bool] = None


# --- SUBJECTS ---
class SubjectCreate(RequestModel):
    code: str = Field(min_length=1)
    name: str = Field(min_length=2)
    credits: int = Field(default=3, ge=1, le=10)
    subject_type: SubjectType = 'THEORY'


class SubjectUpdate(PatchModel):
    non_nullable: ClassVar[tuple] = ('code', 'name', 'credits', 'subject_type', 'teacher_ids')

    code: Optional[str] = Field(default=None, min_length=1)
    name: Optional[str] = Field(default=None, min_length=2)
    credits: Optional[int] = Field(default=None, ge=1, le=10)
    subject_type: Optional[SubjectType] = None
    teacher_ids: Optional[List[int]] = None


# --- TEACHERS ---
class TeacherCreate(RequestModel):
    employee_id: str = Field(min_length=1)
    name: str = Field(min_length=2)
    email: EmailStr
    phone: Optional[str] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    is_available: bool = True
    user_id: Optional[int] = None


class TeacherUpdate(PatchModel):
    non_nullable: ClassVar[tuple] = ('employee_id', 'name', 'email', 'is_available', 'subject_ids')

    employee_id: Optional[str] = Field(default=None, min_length=1)
    name: Optional[str] = Field(default=None, min_length=2)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    is_available: Optional[bool] = None
    user_id: Optional[int] = None
    subject_ids: Optional[List[int]] = None


# --- CLASSES ---
class ClassCreate(RequestModel):
    name: str = Field(min_length=1)
    program: str = Field(min_length=1)
    year: int = Field(ge=1, le=6)
    division: Optional[str] = None
    semester: int = Field(ge=1, le=12)
    strength: int = Field(default=60, gt=0)


class ClassUpdate(PatchModel):
    non_nullable: ClassVar[tuple] = ('name', 'program', 'year', 'semester', 'strength')

    name: Optional[str] = Field(default=None, min_length=1)
    program: Optional[str] = Field(default=None, min_length=1)
    year: Optional[int] = Field(default=None, ge=1, le=6)
    division: Optional[str] = None
    semester: Optional[int] = Field(default=None, ge=1, le=12)
    strength: Optional[int] = Field(default=None, gt=0)


# --- STUDENTS ---
class StudentCreate(RequestModel):
    roll_number: str = Field(min_length=1)
    name: str = Field(min_length=2)
    email: EmailStr
    phone: Optional[str] = None
    class_id: int
    user_id: Optional[int] = None


class StudentUpdate(PatchModel):
    non_nullable: ClassVar[tuple] = ('roll_number', 'name', 'email', 'class_id')

    roll_number: Optional[str] = Field(default=None, min_length=1)
    name: Optional[str] = Field(default=None, min_length=2)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    class_id: Optional[int] = None
    user_id: Optional[int] = None


# --- TIME SLOTS ---
class TimeSlotCreate(RequestModel):
    day: Day
    period: int = Field(ge=1, le=12)
    start_time: str
    end_time: str

    check_times = field_validator('start_time', 'end_time')(normalize_time)


class TimeSlotUpdate(PatchModel):
    non_nullable: ClassVar[tuple] = ('day', 'period', 'start_time', 'end_time')

    day: Optional[Day] = None
    period: Optional[int] = Field(default=None, ge=1, le=12)
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    check_times = field_validator('start_time', 'end_time')(normalize_time)


# --- TIMETABLE ENTRIES ---
class TimetableEntryCreate(RequestModel):
    class_id: int
    subject_id: int
    teacher_id: int
    room_id: int
    time_slot_id: int


class TimetableEntryUpdate(PatchModel):
    non_nullable: ClassVar[tuple] = ('class_id', 'subject_id', 'teacher_id', 'room_id', 'time_slot_id')

    class_id: Optional[int] = None
    subject_id: Optional[int] = None
    teacher_id: Optional[int] = None
    room_id: Optional[int] = None
    time_slot_id: Optional[int] = None


# --- AUTH ---
class RegisterRequest(RequestModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: Optional[str] = None


class LoginRequest(RequestModel):
    email: EmailStr
    password: str = Field(min_length=1)
    remember: bool = False


class RoleUpdate(RequestModel):
    user_id: int
    role: Role


# --- AI ---
class Constraints(RequestModel):
    max_classes_per_day: int = Field(default=6, ge=1, le=10)
    min_break_between_classes: int = Field(default=10, ge=0, le=60)
    preferred_start_time: str = '09:00'
    preferred_end_time: str = '17:00'
    avoid_back_to_back_labs: bool = True

    check_times = field_validator('preferred_start_time', 'preferred_end_time')(normalize_time)


class ChatRequest(RequestModel):
    message: str = Field(min_length=1)
    include_context: bool = False


class GenerateRequest(RequestModel):
    class_id: int
    constraints: Constraints = Field(default_factory=Constraints)


class OptimizeRequest(RequestModel):
    class_id: Optional[int] = None
    constraints: Constraints = Field(default_factory=Constraints)
