#!/usr/bin/env python
#
# Temporary substitution of module members, attributes and mapping items.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Substitute bindings for the length of a scope and put them back after.

Sample usage:

  stubs = stubout.StubOutForTesting()
  with stubs:
    fake_listdir = stubs.Set(os, 'listdir')    # a new understudy.Double
    fake_listdir._SetReturnValue(['a.txt'])
    stubs.SetPath('config.TIMEOUT', 0)
    RunCodeUnderTest()
  # os.listdir and config.TIMEOUT are the originals again.

Every substitution is a PatchEntry on a stack.  Leaving a scope restores the
entries installed inside it, most recent first, whether the scope finished
normally or raised.
"""

import collections.abc
import functools
import importlib
import inspect
import logging

import understudy

_log = logging.getLogger(__name__)


class _AbsentType(object):
  """Saved in place of a member that was only inherited or not owned."""

  def __repr__(self):
    return '<absent>'


ABSENT = _AbsentType()

# Default for "new": install a fresh understudy.Double.
_NEW_DOUBLE = object()


def _OwnerName(owner):
  name = getattr(owner, '__name__', None)
  if isinstance(name, str):
    return name
  return type(owner).__name__


class AttributeSlot(object):
  """A named member of a module, class or instance."""

  def __init__(self, owner, name):
    self.owner = owner
    self.name = name

  def Exists(self):
    return hasattr(self.owner, self.name)

  def Read(self):
    """Return what Write needs to put this member back exactly as it is.

    Class members are read raw from the class __dict__, so staticmethod and
    classmethod wrappers survive the round trip.  A member the owner only
    inherits from its type or bases reads as ABSENT, except a data
    descriptor such as a settable property, which is read through it.
    """

    try:
      own = vars(self.owner)
    except TypeError:
      own = None
    if own is not None and self.name in own:
      return own[self.name]
    if isinstance(self.owner, type):
      return ABSENT
    if own is not None and hasattr(type(self.owner), self.name):
      descriptor = inspect.getattr_static(type(self.owner), self.name)
      if not hasattr(type(descriptor), '__set__'):
        return ABSENT
    return getattr(self.owner, self.name)

  def Write(self, value):
    if value is ABSENT:
      delattr(self.owner, self.name)
    else:
      setattr(self.owner, self.name, value)

  def Describe(self):
    return '%s.%s' % (_OwnerName(self.owner), self.name)


class ItemSlot(object):
  """An entry of a mutable mapping, such as os.environ or a namespace dict."""

  def __init__(self, mapping, key):
    self.mapping = mapping
    self.key = key

  def Exists(self):
    return self.key in self.mapping

  def Read(self):
    return self.mapping[self.key]

  def Write(self, value):
    if value is ABSENT:
      del self.mapping[self.key]
    else:
      self.mapping[self.key] = value

  def Describe(self):
    return '%s[%r]' % (_OwnerName(self.mapping), self.key)


def _SlotFor(owner, name):
  if isinstance(owner, collections.abc.MutableMapping):
    return ItemSlot(owner, name)
  return AttributeSlot(owner, name)


def _Describe(slot):
  describe = getattr(slot, 'Describe', None)
  if describe is None:
    return repr(slot)
  return describe()


class PatchEntry(object):
  """One substitution: where, what was there, and what replaced it."""

  def __init__(self, slot, replacement, label=None):
    self.slot = slot
    self.replacement = replacement
    self.original = None
    self.applied = False
    self._label = label

  def Describe(self):
    return self._label or _Describe(self.slot)

  def Apply(self):
    self.original = self.slot.Read()
    self.slot.Write(self.replacement)
    self.applied = True

  def Restore(self):
    """Put the original back.  Only the first call after Apply does anything.

    Raises:
      Whatever writing the original raised; the entry is not retried.
    """

    if not self.applied:
      return
    self.applied = False
    self.slot.Write(self.original)

  def __repr__(self):
    return '<PatchEntry %s applied=%s>' % (self.Describe(), self.applied)


def _Lookup(owner, component, path):
  if isinstance(owner, collections.abc.Mapping):
    try:
      return owner[component]
    except KeyError:
      raise understudy.PatchTargetNotFound(
          path, 'no entry %r in %s' % (component, _OwnerName(owner))) from None
  try:
    return getattr(owner, component)
  except AttributeError:
    raise understudy.PatchTargetNotFound(
        path, '%s has no member %r' % (_OwnerName(owner), component)) from None


def _Import(components, path):
  import_path = components[0]
  try:
    owner = importlib.import_module(import_path)
  except ImportError as e:
    raise understudy.PatchTargetNotFound(path, str(e))

  for component in components[1:]:
    import_path += '.' + component
    try:
      owner = _Lookup(owner, component, path)
    except understudy.PatchTargetNotFound:
      try:
        owner = importlib.import_module(import_path)
      except ImportError:
        raise understudy.PatchTargetNotFound(
            path, 'cannot resolve %r' % import_path) from None
  return owner


def ResolvePath(path, root=None):
  """Split a dotted path into the owning container and the member name.

  Args:
    # path: dotted path, e.g. 'os.path.join' or 'handlers.default'.
    # root: object or mapping the path starts from; None resolves the first
    #   components through the import system.
    path: str
    root: object

  Returns:
    (owner, member name)

  Raises:
    PatchTargetNotFound: some component of the owner does not resolve.
  """

  if not isinstance(path, str) or not path:
    raise understudy.PatchTargetNotFound(repr(path),
                                         'target must be a dotted path')
  components = path.split('.')
  name = components.pop()
  if root is not None:
    owner = root
    for component in components:
      owner = _Lookup(owner, component, path)
    return owner, name
  if not components:
    raise understudy.PatchTargetNotFound(
        path, 'a path needs an owner and a member name')
  return _Import(components, path), name


class _PatchScope(object):

  def __init__(self, stubs):
    self._stubs = stubs
    self._mark = None

  def __enter__(self):
    self._mark = self._stubs._Depth()
    return self._stubs

  def __exit__(self, exc_type, exc_value, traceback):
    self._stubs._Unwind(self._mark, exc_value)
    return False


class StubOutForTesting(object):
  """Sample Usage:

     You want os.path.exists() to always return true during testing.

     stubs = StubOutForTesting()
     stubs.Set(os.path, 'exists', lambda x: 1)
       ...
     stubs.UnsetAll()

     The above changes os.path.exists into a lambda that returns 1.  Once
     the ... part of the code finishes, the UnsetAll() looks up the old value
     of os.path.exists and restores it.

     Substitutions stack: setting the same binding twice restores the first
     replacement when the second is undone, and the original last.
  """

  def __init__(self):
    self._entries = []
    self._scopes = []

  def _Depth(self):
    return len(self._entries)

  def _Install(self, slot, new, label):
    if not slot.Exists():
      raise understudy.PatchTargetNotFound(label, 'no such binding')
    if new is _NEW_DOUBLE:
      new = understudy.Double(name=label)
    entry = PatchEntry(slot, new, label)
    entry.Apply()
    self._entries.append(entry)
    _log.debug('Stubbed out %s', label)
    return new

  def Set(self, owner, name, new=_NEW_DOUBLE):
    """Replace a member of an object directly.

    Args:
      # owner: module, class, instance or mutable mapping holding the member.
      # name: member name (or mapping key).
      # new: the replacement; omitted, a new understudy.Double is installed.
      owner: object
      name: str
      new: object

    Returns:
      The replacement.

    Raises:
      PatchTargetNotFound: owner has no such member; nothing was changed.
    """

    slot = _SlotFor(owner, name)
    return self._Install(slot, new, slot.Describe())

  def SetPath(self, path, new=_NEW_DOUBLE, root=None):
    """Replace the binding a dotted path names; see ResolvePath and Set."""
    owner, name = ResolvePath(path, root)
    return self._Install(_SlotFor(owner, name), new, path)

  def SetSlot(self, slot, new=_NEW_DOUBLE):
    """Replace the value held by any slot.

    Args:
      # slot: an object with Exists(), Read() and Write(value).
      slot: object
      new: object

    Returns:
      The replacement.
    """

    return self._Install(slot, new, _Describe(slot))

  def Scope(self):
    """Return a context manager restoring everything installed within it.

    Leaving an outer scope also restores whatever an inner scope that was
    never left had installed.
    """

    return _PatchScope(self)

  def __enter__(self):
    scope = self.Scope()
    self._scopes.append(scope)
    return scope.__enter__()

  def __exit__(self, exc_type, exc_value, traceback):
    return self._scopes.pop().__exit__(exc_type, exc_value, traceback)

  def _Unwind(self, mark, primary=None):
    failures = []
    while len(self._entries) > mark:
      entry = self._entries.pop()
      try:
        entry.Restore()
      except Exception as e:
        failures.append((entry, e))
      else:
        _log.debug('Restored %s', entry.Describe())
    if not failures:
      return
    failure = understudy.PatchRestoreFailure(failures, primary)
    if primary is None:
      raise failure
    _log.error('%s (while handling %s: %s)', failure,
               type(primary).__name__, primary)
    primary.add_note(str(failure))

  def UnsetAll(self, primary=None):
    """Undo every substitution, most recent first.

    Every entry is attempted even if some fail.

    Args:
      # primary: a failure already propagating, which stays the error the
      #   caller sees; restore failures are then logged and noted on it.
      primary: BaseException

    Raises:
      PatchRestoreFailure: some entries could not be restored and primary
        was None.
    """

    self._Unwind(0, primary)

  def Entries(self):
    """Return the active entries, oldest first."""
    return tuple(self._entries)


class _Patcher(object):

  def __init__(self, path, new, root):
    self._path = path
    self._new = new
    self._root = root
    self._active = []

  def Start(self):
    stubs = StubOutForTesting()
    replacement = stubs.SetPath(self._path, self._new, self._root)
    self._active.append(stubs)
    return replacement

  def Stop(self, primary=None):
    self._active.pop().UnsetAll(primary)

  def __enter__(self):
    return self.Start()

  def __exit__(self, exc_type, exc_value, traceback):
    self.Stop(exc_value)
    return False

  def __call__(self, func):
    @functools.wraps(func)
    def patched(*args, **kwargs):
      replacement = self.Start()
      if self._new is _NEW_DOUBLE:
        args += (replacement,)
      try:
        result = func(*args, **kwargs)
      except BaseException as e:
        self.Stop(e)
        raise
      self.Stop()
      return result
    return patched


def Patch(path, new=_NEW_DOUBLE, root=None):
  """Substitute the binding at path for a with block or a decorated function.

  As a context manager the replacement is bound by "as".  As a decorator the
  binding is substituted for each call; when new is omitted the created
  double is appended to the positional arguments.

  Example:

    @stubout.Patch('os.listdir')
    def testEmptyDirectory(self, fake_listdir):
      fake_listdir._SetReturnValue([])
      ...
  """

  return _Patcher(path, new, root)
