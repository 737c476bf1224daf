"""Turn uploaded CSV or JSON bank text into canonical questions.

A canonical question is::

    {'topic', 'tag', 'text', 'options', 'answers', 'type', 'explanation'}

with at least two non-empty options and at least one answer index that
points into ``options``. Records that cannot satisfy this are dropped.
"""
import csv
import io
import json
import re
from typing import Any, Dict, List

from flashbattle.errors import ParseError

CSV_REQUIRED = ('text', 'optionA', 'optionB', 'answer')
CSV_OPTIONS = ('optionA', 'optionB', 'optionC', 'optionD')
_ANSWER_SPLIT = re.compile(r'[;|/\s]+')


def normalize_bank_text(content: str, filename: str = None) -> List[Dict[str, Any]]:
    """Dispatch on the file extension: ``.csv`` is CSV, everything else JSON.

    Raises ``ParseError`` when JSON content cannot be decoded.
    """
    if filename and filename.lower().endswith('.csv'):
        return parse_csv(content)
    try:
        data = json.loads(content)
    except ValueError as exc:
        raise ParseError('parse_error') from exc
    return normalize_json(data)


def parse_csv(content: str) -> List[Dict[str, Any]]:
    lines = [line.strip() for line in content.splitlines() if line.strip()]
    if len(lines) < 2:
        return []
    rows = list(csv.reader(io.StringIO('\n'.join(lines))))
    header = [h.strip() for h in rows[0]]
    if any(col not in header for col in CSV_REQUIRED):
        return []
    idx = {name: pos for pos, name in enumerate(header)}

    def cell(cols, name):
        pos = idx.get(name)
        if pos is None or pos >= len(cols):
            return ''
        return cols[pos].strip()

    questions = []
    for cols in rows[1:]:
        if len(cols) < len(header):
            continue
        text = cell(cols, 'text')
        if not text:
            continue
        options = [cell(cols, 'optionA'), cell(cols, 'optionB')]
        options += [opt for opt in (cell(cols, 'optionC'), cell(cols, 'optionD')) if opt]
        if not options[0] or not options[1]:
            continue
        answers = []
        for token in _ANSWER_SPLIT.split(cell(cols, 'answer')):
            # CSV answers are 1-based
            if token.isdigit() and 1 <= int(token) <= len(options) and int(token) - 1 not in answers:
                answers.append(int(token) - 1)
        if not answers:
            continue
        questions.append({
            'topic': cell(cols, 'topic'),
            'tag': cell(cols, 'tag'),
            'text': text,
            'options': options,
            'answers': answers,
            'type': 'multi' if len(answers) > 1 else 'single',
            'explanation': cell(cols, 'explanation'),
        })
    return questions


def normalize_json(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, list):
        items = data
    elif isinstance(data, dict) and isinstance(data.get('questions'), list):
        items = data['questions']
    else:
        return []
    questions = []
    for item in items:
        question = normalize_question(item)
        if question is not None:
            questions.append(question)
    return questions


def normalize_question(item: Any):
    """Normalize one JSON question, or return None when it is unusable."""
    if not isinstance(item, dict):
        return None
    text = str(item.get('text') or '').strip()
    options = item.get('options')
    if not text or not isinstance(options, list):
        return None
    options = ['' if opt is None else str(opt) for opt in options]
    if len(options) < 2:
        return None
    raw_answers = item.get('answers')
    if not isinstance(raw_answers, list):
        raw_answers = [item['answer']] if 'answer' in item else []
    answers = []
    for raw in raw_answers:
        if isinstance(raw, bool):
            continue
        try:
            number = int(raw)
        except (TypeError, ValueError):
            continue
        if 0 <= number < len(options) and number not in answers:
            answers.append(number)
    if not answers:
        return None
    qtype = item.get('type')
    if qtype not in ('single', 'multi'):
        qtype = 'multi' if len(answers) > 1 else 'single'
    return {
        'topic': str(item.get('topic') or ''),
        'tag': str(item.get('tag') or ''),
        'text': text,
        'options': options,
        'answers': answers,
        'type': qtype,
        'explanation': str(item.get('explanation') or ''),
    }
