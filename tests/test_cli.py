from timemaster.db import get_db


def test_seed_db_is_repeatable(app):
    runner = app.test_cli_runner()
    for _ in range(2):
        result = runner.invoke(args=['seed-db'])
        assert result.exit_code == 0, result.output
        assert 'Seeded the database.' in result.output

    with app.app_context():
        db = get_db()
        counts = {t: db.execute(f'SELECT COUNT(*) FROM {t}').fetchone()[0]
                  for t in ('rooms', 'subjects', 'teachers', 'classes', 'time_slots', 'students', 'users')}
    assert counts == {
        'rooms': 9, 'subjects': 14, 'teachers': 11, 'classes': 4,
        'time_slots': 36, 'students': 28, 'users': 1,
    }


def test_init_db_command(app):
    result = app.test_cli_runner().invoke(args=['init-db'])
    assert result.exit_code == 0
    assert 'Initialized the database.' in result.output
