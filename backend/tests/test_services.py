import json
import random

import pytest

from flashbattle import db
from flashbattle.errors import Conflict, NotFound, ParseError
from flashbattle.models import Bank, ExamSession, Room, UserStats
from flashbattle.services import banks, leaderboard, normalizer, rooms, scoring, sessions


def _bank(n):
    return [{'text': f'Q{i}', 'options': ['a', 'b'], 'answers': [0]} for i in range(n)]


# ---- shuffle / selection ----

@pytest.mark.parametrize('n', [0, 1, 2, 7, 50])
def test_shuffle_is_a_permutation(n):
    rng = random.Random(n)
    for _ in range(20):
        assert sorted(sessions.shuffled_indices(n, rng)) == list(range(n))


def test_shuffle_reaches_every_ordering():
    rng = random.Random(1234)
    seen = {tuple(sessions.shuffled_indices(3, rng)) for _ in range(600)}
    assert len(seen) == 6


def test_pick_questions_clamps_and_defaults():
    bank = _bank(4)
    assert len(sessions.pick_questions(bank, 10)) == 4
    assert len(sessions.pick_questions(bank, 0)) == 4
    assert len(sessions.pick_questions(bank, -3)) == 4
    assert len(sessions.pick_questions(bank, None)) == 4
    picked = sessions.pick_questions(bank, 3)
    assert len(picked) == 3
    assert len({q['text'] for q in picked}) == 3
    assert sessions.pick_questions([], 5) == []


def test_start_session_persists_descriptor(flask_app):
    rooms.create_room('exam-room', 'host')
    banks.save_bank('exam-room', 'b1', None, _bank(3))
    first = sessions.start_session('exam-room', 'b1', 'host', 2, 5)
    assert first['questionCount'] == 2
    assert len(first['questions']) == 2
    sessions.start_session('exam-room', 'b1', 'host')
    exam = db.session.get(ExamSession, 'exam-room')
    assert exam.question_count == 3
    assert exam.time_limit_minutes is None
    assert ExamSession.query.count() == 1


def test_room_without_host_accepts_any_launcher(flask_app):
    db.session.add(Room(id='legacy', host_id=None))
    db.session.commit()
    banks.save_bank('legacy', 'b1', 'Legacy', _bank(2))
    result = sessions.start_session('legacy', 'b1', 'anyone')
    assert result['questionCount'] == 2


# ---- rooms / banks ----

def test_create_room_twice(flask_app):
    room = rooms.create_room('r1', 'h')
    assert room.to_dict()['hostId'] == 'h'
    with pytest.raises(Conflict) as exc:
        rooms.create_room('r1', 'other')
    assert exc.value.code == 'room_exists'
    assert db.session.get(Room, 'r1').host_id == 'h'


def test_delete_room_removes_banks_and_exam(flask_app):
    rooms.create_room('gone', 'h')
    banks.save_bank('gone', 'b1', 'one', _bank(2))
    banks.save_bank('gone', 'b2', 'two', _bank(2))
    banks.save_bank('other', 'b1', 'kept', _bank(2))
    sessions.start_session('gone', 'b1', 'h')
    assert rooms.delete_room('gone', 'h') == 4
    assert banks.list_banks('gone') == []
    assert len(banks.load_questions('other', 'b1')) == 2
    with pytest.raises(NotFound):
        rooms.delete_room('gone', 'h')


def test_save_bank_overwrites(flask_app):
    banks.save_bank('r', 'b', 'first', _bank(3))
    banks.save_bank('r', 'b', None, _bank(1))
    assert banks.list_banks('r') == [{'id': 'b', 'name': 'b', 'count': 1}]


def test_list_banks_degrades_on_bad_payload(flask_app):
    banks.save_bank('r', 'good', 'Good', _bank(2))
    db.session.add(Bank(room_id='r', bank_id='broken', payload='{oops'))
    db.session.add(Bank(room_id='r', bank_id='bare', payload=json.dumps(_bank(3))))
    db.session.commit()
    listing = {b['id']: b for b in banks.list_banks('r')}
    assert listing['broken'] == {'id': 'broken', 'name': 'broken', 'count': 0}
    assert listing['bare']['count'] == 3
    assert listing['good'] == {'id': 'good', 'name': 'Good', 'count': 2}
    assert banks.load_questions('r', 'broken') == []
    assert len(banks.load_questions('r', 'bare')) == 3


def test_list_rooms(flask_app):
    rooms.create_room('a', 'h1')
    rooms.create_room('b', 'h2')
    banks.save_bank('a', 'b1', None, _bank(1))
    listed = {r['roomId']: r for r in rooms.list_rooms()}
    assert listed['a']['bankCount'] == 1
    assert listed['b']['bankCount'] == 0
    assert listed['a']['activeExam'] is None


# ---- scoring ----

def test_aggregates_over_many_submissions(flask_app):
    scores = [12, 40, 7, 33, 8]
    for s in scores:
        scoring.submit_result('p', score=s, total=50, correct_count=s)
    stats = db.session.get(UserStats, 'p')
    assert stats.attempt_count == len(scores)
    assert stats.best_score == max(scores)
    assert stats.total_score_sum == sum(scores)
    assert stats.avg_score == 20


def test_average_rounds_half_up(flask_app):
    scoring.submit_result('half', score=1)
    scoring.submit_result('half', score=2)
    assert scoring.get_stats('half')['avgScore'] == 2
    assert scoring.round_half_up(2.5) == 3
    assert scoring.round_half_up(2.49) == 2


def test_first_result_race_is_retried(flask_app, monkeypatch):
    scoring.submit_result('racer', score=10)
    # A fresh session, as a concurrent request would have
    db.session.remove()
    real_lookup = scoring._locked_stats
    lookups = []

    def missed_then_real(player_id):
        lookups.append(player_id)
        return None if len(lookups) == 1 else real_lookup(player_id)

    monkeypatch.setattr(scoring, '_locked_stats', missed_then_real)
    stats = scoring.submit_result('racer', score=20)
    assert lookups == ['racer', 'racer']
    assert stats.attempt_count == 2
    assert stats.total_score_sum == 30
    assert [h['score'] for h in scoring.get_history('racer')] == [20, 10]


def test_history_keeps_latest_fifty(flask_app):
    for s in range(55):
        scoring.submit_result('busy', score=s)
    history = scoring.get_history('busy')
    assert len(history) == 50
    assert [h['score'] for h in history] == list(range(54, 4, -1))
    from flashbattle.models import HistoryEntry
    assert HistoryEntry.query.filter_by(user_id='busy').count() == 50


def test_wrong_book_is_never_deduplicated(flask_app):
    wrong = [{'text': 'same', 'options': ['x', 'y'], 'answers': [1]}, 'junk']
    scoring.submit_result('w', score=1, wrong_questions=wrong)
    scoring.submit_result('w', score=1, wrong_questions=wrong)
    scoring.submit_result('w', score=1, wrong_questions=[])
    assert [q['text'] for q in scoring.get_wrong_questions('w')] == ['same', 'same']
    assert scoring.get_history('w')[-1]['wrongCount'] == 1


def test_leaderboard_entries_replace_per_mode(flask_app):
    scoring.submit_result('x', score=50)
    scoring.submit_result('x', score=20)
    assert leaderboard.query('last')['entries'] == [{'userId': 'x', 'name': None, 'score': 20}]
    assert leaderboard.query('best')['entries'][0]['score'] == 50
    assert leaderboard.query('avg')['entries'][0]['score'] == 35
    assert leaderboard.query('last')['total'] == 1
    assert leaderboard.flattened_top('best', 10) == ['x', 50]


# ---- normalizer ----

def test_csv_normalization():
    content = (
        'topic,tag,text,optionA,optionB,optionC,optionD,answer,explanation\n'
        'geo,cap,Capital of France?,Berlin,Paris,,,2,It is Paris\n'
        'geo,cap,Pick evens,1,2,3,4,2;4,\n'
        'geo,cap,Out of range,a,b,,,3,\n'
        'geo,cap,,a,b,,,1,\n'
        'short,row\n'
    )
    questions = normalizer.normalize_bank_text(content, 'bank.csv')
    assert len(questions) == 2
    assert questions[0] == {
        'topic': 'geo', 'tag': 'cap', 'text': 'Capital of France?', 'options': ['Berlin', 'Paris'],
        'answers': [1], 'type': 'single', 'explanation': 'It is Paris',
    }
    assert questions[1]['answers'] == [1, 3]
    assert questions[1]['type'] == 'multi'


def test_csv_missing_answer_column_yields_nothing():
    content = 'text,optionA,optionB\nQ,a,b\n'
    assert normalizer.normalize_bank_text(content, 'x.csv') == []


def test_json_normalization_drops_malformed():
    data = {'questions': [
        {'text': 'ok', 'options': ['a', 'b'], 'answer': 1},
        {'text': 'multi', 'options': ['a', 'b', 'c'], 'answers': [0, '2', 9]},
        {'text': 'one option', 'options': ['a'], 'answers': [0]},
        {'text': 'no answers', 'options': ['a', 'b']},
        {'options': ['a', 'b'], 'answers': [0]},
        'not a dict',
    ]}
    questions = normalizer.normalize_bank_text(json.dumps(data), 'bank.json')
    assert [q['text'] for q in questions] == ['ok', 'multi']
    assert questions[0]['answers'] == [1]
    assert questions[1]['answers'] == [0, 2]
    assert questions[1]['type'] == 'multi'


def test_json_parse_error():
    with pytest.raises(ParseError):
        normalizer.normalize_bank_text('[1, 2', None)
    assert normalizer.normalize_bank_text('{"nothing": true}') == []
