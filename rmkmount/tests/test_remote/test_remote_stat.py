import stat

from rmkmount.remote import RemoteStat


def test_unique_id():
    st = RemoteStat(path="/docs/0a1b-2c3d.metadata")

    assert st.unique_id == "0a1b-2c3d"


def test_perm():
    assert RemoteStat(path="a", mode=stat.S_IFREG | 0o640).perm == 0o640
    assert RemoteStat(path="a", mode=stat.S_IFDIR | 0o4755).perm == 0o755
    assert RemoteStat(path="a").perm == 0o755


def test_special():
    st = RemoteStat.special("")

    assert stat.S_ISDIR(st.mode)
    assert st.perm == 0o444
    assert st.mtime > 0


def test_is_more_recent_than():
    old = RemoteStat(path="a", mtime=100)
    new = RemoteStat(path="a", mtime=101)

    assert new.is_more_recent_than(old)
    assert not old.is_more_recent_than(new)
    assert not old.is_more_recent_than(RemoteStat(path="a", mtime=100))
