from rtpintercept.errors import MultiError, flatten_errors


def test_multi_error():
    raw = [ValueError("err1"), ValueError("err2"), ValueError("err3"), ValueError("err4")]
    errs = flatten_errors([raw[0], None, raw[1], flatten_errors([raw[2]])])
    assert isinstance(errs, MultiError)
    assert str(errs) == "err1\nerr2\nerr3"
    for e in raw[:3]:
        assert errs.includes(e)
    assert not errs.includes(raw[3])


def test_flatten_empty_is_none():
    assert flatten_errors([None, None]) is None