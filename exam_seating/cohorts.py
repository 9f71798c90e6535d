"""
Separation keys. Two students with the same key should not sit next to each
other; a key of None opts a student out of separation entirely.
"""

from exam_seating.models import Candidate

UNASSIGNED = "unassigned"


def _value(student, attr):
    value = getattr(student, attr, None)
    if value is None or value == "":
        return UNASSIGNED
    return str(value)


def by_class_department(student):
    return f"{_value(student, 'year')}:{_value(student, 'dept')}"


def by_class(student):
    return _value(student, "year")


def by_department(student):
    return _value(student, "dept")


def no_separation(student):
    return None


_CLASSIFIERS = {
    "class_department": by_class_department,
    "class": by_class,
    "department": by_department,
    "none": no_separation,
}

DEFAULT_POLICY = "class_department"


def register_classifier(name, fn):
    _CLASSIFIERS[name] = fn


def get_classifier(name=None):
    name = name or DEFAULT_POLICY
    try:
        return _CLASSIFIERS[name]
    except KeyError:
        raise ValueError(f"Unknown separation policy: {name}") from None


def available_policies():
    return sorted(_CLASSIFIERS)


def tag_students(students, classifier, id_attr="id"):
    return [Candidate(student_id=getattr(s, id_attr), key=classifier(s)) for s in students]
