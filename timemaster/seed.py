"""Sample data for a fresh database. Safe to run more than once."""

import logging

from .db import DAYS, get_db

logger = logging.getLogger(__name__)

ROOMS = [
    ('C101', 100, 'CLASSROOM', 'Block C', 1),
    ('C102', 50, 'CLASSROOM', 'Block C', 1),
    ('C103', 50, 'CLASSROOM', 'Block C', 1),
    ('L201', 30, 'LAB', 'Block L', 2),
    ('L202', 30, 'LAB', 'Block L', 2),
    ('L203', 30, 'LAB', 'Block L', 2),
    ('C301', 60, 'CLASSROOM', 'Block C', 3),
    ('C302', 60, 'CLASSROOM', 'Block C', 3),
    ('C303', 60, 'CLASSROOM', 'Block C', 3),
]

SUBJECTS = [
    ('BEEE', 'Basic Electrical and Electronics Engineering'),
    ('DLD', 'Digital Logic Design'),
    ('CN', 'Computer Networks'),
    ('PPS', 'Programming for Problem Solving'),
    ('OOPJ', 'Object Oriented Programming with Java'),
    ('EC', 'Engineering Chemistry'),
    ('EGD', 'Engineering Graphics and Design'),
    ('PS', 'Probability and Statistics'),
    ('WP', 'Web Programming'),
    ('MM', 'Mathematical Methods'),
    ('DAA', 'Design and Analysis of Algorithms'),
    ('DSA', 'Data Structures and Algorithms'),
    ('DBMS', 'Database Management Systems'),
    ('COA', 'Computer Organization and Architecture'),
]

# (employee_id, name, email, department, designation, subject code)
TEACHERS = [
    ('EMP001', 'Prof. Divyang Sharma', 'divyang@college.edu', 'Electrical', 'Associate Professor', 'BEEE'),
    ('EMP002', 'Prof. Yogesh Patil', 'yogesh@college.edu', 'Computer Science', 'Assistant Professor', 'CN'),
    ('EMP003', 'Prof. Asha Kulkarni', 'asha@college.edu', 'Computer Science', 'Associate Professor', 'DBMS'),
    ('EMP004', 'Prof. Tejaswini Joshi', 'tejaswini@college.edu', 'Computer Science', 'Assistant Professor', 'OOPJ'),
    ('EMP005', 'Prof. Aparna Desai', 'aparna@college.edu', 'Chemistry', 'Professor', 'EC'),
    ('EMP006', 'Prof. Sandeep Kumar', 'sandeep@college.edu', 'Computer Science', 'Assistant Professor', 'DSA'),
    ('EMP007', 'Prof. Kasar Singh', 'kasar@college.edu', 'Mechanical', 'Associate Professor', 'EGD'),
    ('EMP008', 'Prof. Jyoti Mehta', 'jyoti@college.edu', 'Mathematics', 'Assistant Professor', 'PS'),
    ('EMP009', 'Prof. Preeti Gupta', 'preetigupta@college.edu', 'Computer Science', 'Assistant Professor', 'DAA'),
    ('EMP010', 'Prof. Preeti Godbole', 'preetigodbole@college.edu', 'Mathematics', 'Associate Professor', 'MM'),
    ('EMP011', 'Prof. Preeti Agarwal', 'preetiagar@college.edu', 'Computer Science', 'Assistant Professor', 'WP'),
]

CLASSES = [
    ('MBA Tech 2024', 'MBA Tech'),
    ('BTech CE 2024', 'BTech CE'),
    ('BTech AIDS 2024', 'BTech AIDS'),
    ('BTech CSBS 2024', 'BTech CSBS'),
]

PERIODS = [
    (1, '09:00', '10:00'),
    (2, '10:00', '11:00'),
    (3, '11:15', '12:15'),
    (4, '12:15', '13:15'),
    (5, '14:00', '15:00'),
    (6, '15:00', '16:00'),
]

STUDENT_NAMES = [
    'Aarav', 'Aditi', 'Amit', 'Ananya', 'Arjun', 'Avni', 'Deepak', 'Divya',
    'Gaurav', 'Ishaan', 'Kavya', 'Krishna', 'Manisha', 'Maya', 'Mohit',
    'Neha', 'Pranav', 'Priya', 'Rahul', 'Riya', 'Rohit', 'Sakshi', 'Sanjay',
    'Shreya', 'Siddharth', 'Sneha', 'Tanvi', 'Vikram',
]
STUDENTS_PER_CLASS = 7


def seed_db():
    db = get_db()
    cur = db.cursor()

    cur.executemany(
        'INSERT OR IGNORE INTO rooms (name, capacity, room_type, building, floor) VALUES (?, ?, ?, ?, ?)', ROOMS
    )
    cur.executemany('INSERT OR IGNORE INTO subjects (code, name) VALUES (?, ?)', SUBJECTS)
    cur.executemany(
        'INSERT OR IGNORE INTO teachers (employee_id, name, email, department, designation) VALUES (?, ?, ?, ?, ?)',
        [t[:5] for t in TEACHERS],
    )
    for employee_id, *_, subject_code in TEACHERS:
        cur.execute('''
            INSERT OR IGNORE INTO teacher_subjects (teacher_id, subject_id)
            SELECT t.teacher_id, s.subject_id FROM teachers t, subjects s
            WHERE t.employee_id = ? AND s.code = ?
        ''', (employee_id, subject_code))

    cur.executemany(
        "INSERT OR IGNORE INTO classes (name, program, year, division, semester, strength) VALUES (?, ?, 1, 'A', 1, 60)",
        CLASSES,
    )
    cur.executemany(
        'INSERT OR IGNORE INTO time_slots (day, period, start_time, end_time) VALUES (?, ?, ?, ?)',
        [(day, period, start, end) for day in DAYS for period, start, end in PERIODS],
    )

    for index, (class_name, program) in enumerate(CLASSES):
        class_id = cur.execute('SELECT class_id FROM classes WHERE name = ?', (class_name,)).fetchone()[0]
        prefix = program.replace(' ', '')[:4].upper()
        names = STUDENT_NAMES[index * STUDENTS_PER_CLASS:(index + 1) * STUDENTS_PER_CLASS]
        for i, name in enumerate(names):
            roll_number = f'{prefix}{(index + 1) * 10 + i + 1:03d}'
            cur.execute(
                'INSERT OR IGNORE INTO students (roll_number, name, email, class_id) VALUES (?, ?, ?, ?)',
                (roll_number, name, f'{name.lower()}.{roll_number.lower()}@college.edu', class_id),
            )

    db.commit()
    logger.info(
        f"Seeded {len(ROOMS)} rooms, {len(SUBJECTS)} subjects, {len(TEACHERS)} teachers, "
        f"{len(CLASSES)} classes, {len(DAYS) * len(PERIODS)} time slots"
    )
