#!/usr/bin/env python
#
# Recording test doubles for Python.
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

"""Understudy: record-then-verify test doubles.

A Double stands in for any object or callable.  Every member you touch on it
is another Double, created on first access and kept for the life of its
parent; every call is logged.  After exercising the code under test, ask the
module-level verification functions what happened.

Suggested usage / workflow:

  # Create a double and configure what it answers.
  store = understudy.Double(name='store')
  store.Get._SetReturnValue('cached')
  store.Put._SetSideEffect(IOError('disk full'))

  # Exercise the code under test.
  result = Cache(store).Lookup('key')

  # Verify what happened.
  understudy.AssertCalledWith(store.Get, 'key', timeout=understudy.ANY)
  understudy.AssertHasCalls(store.Get, [understudy.Call('key')])

The double's own API is prefixed with an underscore (_SetReturnValue,
_SetSideEffect, _SetSpec, _ResetCalls, ...) so it never collides with the
members being stood in for.  Bindings are substituted with the stubout
module; see stubout.StubOutForTesting and Understudy.StubOutWithDouble.
"""

import functools
import itertools
import logging
import re
import types
import unittest

import stubout

_log = logging.getLogger(__name__)


class Error(AssertionError):
  """Base exception for this module."""

  pass


class AttributeSpecViolation(Error, AttributeError):
  """Raised when a member outside a double's spec is accessed."""

  def __init__(self, owner_name, member_name, spec):
    """Init exception.

    Args:
      # owner_name: full name of the double that was accessed.
      # member_name: the member that is not part of the spec.
      # spec: the allowed member names.
      owner_name: str
      member_name: str
      spec: frozenset of str
    """

    Error.__init__(self, owner_name, member_name)
    self._owner_name = owner_name
    self._member_name = member_name
    self._spec = spec

  def __str__(self):
    return ("%s has no member %r; allowed members are: %s" %
            (self._owner_name, self._member_name,
             ', '.join(sorted(self._spec)) or '(none)'))


class SideEffectExhausted(Error):
  """Raised when a sequence of responses has no entries left."""

  def __init__(self, double_name):
    Error.__init__(self, double_name)
    self._double_name = double_name

  def __str__(self):
    return "%s was called after its response sequence ran out" % (
        self._double_name,)


class AssertionMismatch(Error):
  """Raised when a verification query's expectation was not met.

  Carries both the expected calls and every call that was actually recorded,
  so the failure reads on its own.
  """

  def __init__(self, description, double_name, expected, actual):
    """Init exception.

    Args:
      # description: what was being checked.
      # double_name: full name of the double that was verified.
      # expected: the expected calls.
      # actual: the recorded invocations.
      description: str
      double_name: str
      expected: [Call]
      actual: [Invocation]
    """

    Error.__init__(self, description)
    self.description = description
    self.double_name = double_name
    self.expected = tuple(expected)
    self.actual = tuple(actual)

  def __str__(self):
    expected = _FormatCallList(self.double_name, self.expected)
    actual = _FormatCallList(self.double_name, self.actual)
    return "%s\nExpected:\n%s\nActual:\n%s" % (self.description, expected,
                                               actual)


class PatchTargetNotFound(Error):
  """Raised when a patch target does not resolve to an existing binding."""

  def __init__(self, target, reason):
    Error.__init__(self, target, reason)
    self.target = target
    self.reason = reason

  def __str__(self):
    return "Cannot patch %s: %s" % (self.target, self.reason)


class PatchRestoreFailure(Error):
  """Raised when one or more patched bindings could not be restored.

  Every entry of the unwound scope was attempted before this is raised.
  """

  def __init__(self, failures, primary=None):
    """Init exception.

    Args:
      # failures: each entry that failed, with the error it raised.
      # primary: the protected-code failure that triggered the unwind, if any.
      failures: [(stubout.PatchEntry, Exception)]
      primary: BaseException or None
    """

    if not failures:
      raise ValueError("There must be at least one restore failure")
    Error.__init__(self, failures)
    self.failures = list(failures)
    self.primary = primary
    if primary is not None:
      self.__cause__ = primary

  def __str__(self):
    lines = ["%3d.  %s: %s: %s" % (i, entry.Describe(), type(error).__name__,
                                   error)
             for i, (entry, error) in enumerate(self.failures)]
    return "Could not restore patched bindings:\n%s" % "\n".join(lines)


class _DefaultType(object):
  """Marker for "not configured" and "defer to the configured default"."""

  def __repr__(self):
    return 'DEFAULT'


DEFAULT = _DefaultType()

_SEQUENCE = itertools.count(1)


def _FormatCall(name, args, kwargs):
  params = ([repr(arg) for arg in args] +
            ['%s=%r' % (key, kwargs[key]) for key in sorted(kwargs)])
  return "%s(%s)" % (name, ', '.join(params))


def _FormatCallList(name, calls):
  if not calls:
    return "  (no calls)"
  return "\n".join(["%3d.  %s" % (i, call.Format(name))
                    for i, call in enumerate(calls)])


def _IsException(obj):
  if isinstance(obj, BaseException):
    return True
  return isinstance(obj, type) and issubclass(obj, BaseException)


class Invocation(tuple):
  """One recorded call: positional args, keyword args and sequence index."""

  __slots__ = ()

  def __new__(cls, args, kwargs, index):
    return tuple.__new__(cls, (tuple(args),
                               types.MappingProxyType(dict(kwargs)), index))

  @property
  def args(self):
    return self[0]

  @property
  def kwargs(self):
    return self[1]

  @property
  def index(self):
    return self[2]

  def Format(self, name):
    return _FormatCall(name, self.args, self.kwargs)

  def __repr__(self):
    return "<Invocation #%d %s>" % (self.index, self.Format('call'))


class InvocationLog(object):
  """Append-only record of the calls made to one double."""

  def __init__(self):
    self._invocations = []

  def Append(self, args, kwargs):
    invocation = Invocation(args, kwargs, next(_SEQUENCE))
    self._invocations.append(invocation)
    return invocation

  def Snapshot(self):
    """Returns the recorded invocations, oldest first, as a tuple."""
    return tuple(self._invocations)

  def Clear(self):
    del self._invocations[:]

  def __len__(self):
    return len(self._invocations)

  def __iter__(self):
    return iter(self.Snapshot())


class ResponsePolicy(object):
  """Decides what a call to a double returns or raises."""

  def Resolve(self, double, args, kwargs):
    """Produce the outcome of one call.

    Args:
      # double: the double that was called.
      # args: positional arguments of the call.
      # kwargs: keyword arguments of the call.
      double: Double
      args: tuple
      kwargs: dict

    Returns:
      The value the call returns.
    """

    raise NotImplementedError('method must be implemented by a subclass.')


class Unset(ResponsePolicy):
  """Delegate to the wrapped callable, or return the return-value child."""

  def Resolve(self, double, args, kwargs):
    return double._Unresolved(args, kwargs)

  def __repr__(self):
    return '<Unset>'


class FixedValue(ResponsePolicy):
  """Return the same value on every call."""

  def __init__(self, value):
    self.value = value

  def Resolve(self, double, args, kwargs):
    return self.value

  def __repr__(self):
    return '<FixedValue %r>' % (self.value,)


class RaisesException(ResponsePolicy):
  """Raise the same exception (class or instance) on every call."""

  def __init__(self, exception):
    if not _IsException(exception):
      raise TypeError('%r is not an exception' % (exception,))
    self.exception = exception

  def Resolve(self, double, args, kwargs):
    raise self.exception

  def __repr__(self):
    return '<RaisesException %r>' % (self.exception,)


class SequenceOfResponses(ResponsePolicy):
  """Answer successive calls from an iterable, one entry per call.

  Exception entries are raised instead of returned.  Once the iterable runs
  out, every further call raises SideEffectExhausted.
  """

  def __init__(self, responses):
    self._responses = iter(responses)

  def Resolve(self, double, args, kwargs):
    try:
      response = next(self._responses)
    except StopIteration:
      _log.debug('Response sequence of %s exhausted', double._FullName())
      raise SideEffectExhausted(double._FullName()) from None
    if _IsException(response):
      raise response
    return response

  def __repr__(self):
    return '<SequenceOfResponses>'


class ComputedByCallable(ResponsePolicy):
  """Answer each call with the result of a function given the same arguments.

  A function result of DEFAULT defers to the fallback value when one was
  configured, otherwise to the Unset behaviour.
  """

  def __init__(self, func, fallback=DEFAULT):
    self.func = func
    self.fallback = fallback

  def Resolve(self, double, args, kwargs):
    result = self.func(*args, **kwargs)
    if result is not DEFAULT:
      return result
    if self.fallback is not DEFAULT:
      return self.fallback
    return double._Unresolved(args, kwargs)

  def __repr__(self):
    return '<ComputedByCallable %r>' % (self.func,)


def _PolicyForSideEffect(effect):
  if effect is None:
    return Unset()
  if _IsException(effect):
    return RaisesException(effect)
  if callable(effect):
    return ComputedByCallable(effect)
  try:
    return SequenceOfResponses(effect)
  except TypeError:
    raise TypeError('side effect must be an exception, a callable or an '
                    'iterable, not %r' % (effect,)) from None


class Double(object):
  """A recording stand-in for any object or callable.

  Public member access returns a child Double, created on first access and
  the same instance ever after.  Calling a Double logs the call and answers
  it through the active ResponsePolicy.
  """

  def __init__(self, name=None, spec=None, wraps=None, return_value=DEFAULT,
               side_effect=DEFAULT, _parent=None, **attrs):
    """Initialize a double.

    Args:
      # name: label used in diagnostics only.
      # spec: allowed member names; None allows every name.
      # wraps: real object that answers calls no policy resolves.
      # return_value: value returned by every call.
      # side_effect: exception, callable or iterable driving the response;
      #   None restores the unconfigured behaviour.
      # attrs: attr=value binds a plain member, attr__returns=value sets the
      #   return value of child attr.
      name: str
      spec: iterable of str
      wraps: object
      return_value: object
      side_effect: object
    """

    self._name = name
    self._parent = _parent
    self._calls = InvocationLog()
    self._policy = Unset()
    self._children = {}
    self._return_child = None
    self._spec = None
    self._wraps = wraps
    self._Configure(spec=spec, return_value=return_value,
                    side_effect=side_effect, **attrs)

  def _Configure(self, **config):
    """Apply the configuration surface to this double.

    Recognized keys are name, wraps, spec, return_value and side_effect.
    When both return_value and a callable side_effect are given, the
    callable answers first and DEFAULT from it returns return_value.  Any
    other key configures a member (see __init__).
    """

    if 'name' in config:
      self._name = config.pop('name')
    if 'wraps' in config:
      self._wraps = config.pop('wraps')
    if 'spec' in config:
      self._SetSpec(config.pop('spec'))
    return_value = config.pop('return_value', DEFAULT)
    side_effect = config.pop('side_effect', DEFAULT)

    if side_effect is not DEFAULT and side_effect is not None:
      policy = _PolicyForSideEffect(side_effect)
      if isinstance(policy, ComputedByCallable):
        policy.fallback = return_value
      self._SetPolicy(policy)
    elif return_value is not DEFAULT:
      self._SetReturnValue(return_value)
    elif side_effect is None:
      self._SetPolicy(Unset())

    for attr_name, value in sorted(config.items()):
      if attr_name.endswith('__returns'):
        self._Get(attr_name[:-len('__returns')])._SetReturnValue(value)
      else:
        self._Bind(attr_name, value)

  def _FullName(self):
    if self._parent is None:
      return self._name or 'double'
    parent_name = self._parent._FullName()
    if self._name.startswith('('):
      return parent_name + self._name
    return '%s.%s' % (parent_name, self._name)

  def _CheckSpec(self, name):
    if self._spec is not None and name not in self._spec:
      raise AttributeSpecViolation(self._FullName(), name, self._spec)

  def _CreateChild(self, name):
    wraps = None
    if self._wraps is not None and not name.startswith('('):
      wraps = getattr(self._wraps, name)
    child = type(self)(name=name, wraps=wraps, _parent=self)
    _log.debug('Created %s', child._FullName())
    return child

  def _Get(self, name):
    """Return the member called name, creating a child double on first use.

    Raises:
      AttributeSpecViolation: a spec is set and name is not in it.
    """

    self._CheckSpec(name)
    try:
      return self._children[name]
    except KeyError:
      child = self._CreateChild(name)
      self._children[name] = child
      return child

  def _Bind(self, name, value):
    """Bind a plain value as member name."""
    self._CheckSpec(name)
    self._children[name] = value

  def _Children(self):
    return dict(self._children)

  def _ChildDoubles(self):
    for child in self._children.values():
      if isinstance(child, Double):
        yield child
    if self._return_child is not None:
      yield self._return_child

  def _ReturnValue(self):
    """Return the child double that unconfigured calls return."""
    if self._return_child is None:
      self._return_child = self._CreateChild('()')
    return self._return_child

  def _Policy(self):
    return self._policy

  def _SetPolicy(self, policy):
    if not isinstance(policy, ResponsePolicy):
      raise TypeError('%r is not a ResponsePolicy' % (policy,))
    _log.debug('%s now answers with %r', self._FullName(), policy)
    self._policy = policy

  def _SetReturnValue(self, value):
    """Make every subsequent call return value."""
    self._SetPolicy(FixedValue(value))

  def _SetSideEffect(self, effect):
    """Drive subsequent calls by effect.

    Args:
      # effect: an exception class or instance is raised on every call; a
      #   callable computes each result; any other iterable is consumed one
      #   entry per call; None goes back to the unconfigured behaviour.
      effect: object

    Raises:
      TypeError: effect is none of the above.
    """

    self._SetPolicy(_PolicyForSideEffect(effect))

  def _SetSpec(self, names):
    """Restrict the members this double exposes to names (None lifts it)."""
    if names is None:
      self._spec = None
      return
    if isinstance(names, str):
      raise TypeError('spec must be a collection of member names, not a '
                      'single string %r' % (names,))
    spec = frozenset(names)
    for name in spec:
      if not isinstance(name, str):
        raise TypeError('spec member names must be strings, not %r' % (name,))
    self._spec = spec

  def _Log(self):
    return self._calls

  def _ResetCalls(self, recursive=False):
    """Forget recorded calls; the policy and children are kept.

    Args:
      # recursive: also forget the calls of every child double.
      recursive: bool
    """

    pending = [self]
    seen = set()
    while pending:
      double = pending.pop()
      if id(double) in seen:
        continue
      seen.add(id(double))
      double._calls.Clear()
      if recursive:
        pending.extend(double._ChildDoubles())

  def _Unresolved(self, args, kwargs):
    if self._wraps is not None:
      return self._wraps(*args, **kwargs)
    return self._ReturnValue()

  def _Invoke(self, args, kwargs):
    """Record a call and resolve its outcome through the active policy."""
    self._calls.Append(args, kwargs)
    return self._policy.Resolve(self, args, kwargs)

  def __call__(self, /, *args, **kwargs):
    return self._Invoke(args, kwargs)

  def __getattr__(self, name):
    # Only reached when normal lookup fails; private names are never members.
    if name.startswith('_'):
      raise AttributeError(name)
    return self._Get(name)

  def __setattr__(self, name, value):
    if name.startswith('_'):
      object.__setattr__(self, name, value)
    else:
      self._Bind(name, value)

  def __repr__(self):
    return '<%s %s>' % (type(self).__name__, self._FullName())


PROTOCOL_OPERATIONS = ('__len__', '__iter__', '__next__', '__getitem__',
                       '__setitem__', '__contains__', '__enter__', '__exit__')

_PROTOCOL_DEFAULTS = {
    '__len__': lambda owner: FixedValue(0),
    '__iter__': lambda owner: FixedValue(owner),
    '__next__': lambda owner: RaisesException(StopIteration),
    '__setitem__': lambda owner: FixedValue(None),
    '__contains__': lambda owner: FixedValue(False),
    '__exit__': lambda owner: FixedValue(False),
}


class ProtocolDouble(Double):
  """A Double that also answers container and context-manager protocols.

  Each protocol operation is a child double of its own, reached through
  _Protocol(operation) and configured like any other double:

    files = understudy.ProtocolDouble(name='files')
    files._Protocol('__len__')._SetReturnValue(3)
    files._Protocol('__iter__')._SetReturnValue(['a', 'b', 'c'])
    assert len(files) == 3
  """

  def __init__(self, *args, **kwargs):
    self._protocol_children = {}
    Double.__init__(self, *args, **kwargs)

  def _Protocol(self, operation):
    """Return the child double that answers operation.

    Raises:
      ValueError: operation is not in PROTOCOL_OPERATIONS.
    """

    if operation not in PROTOCOL_OPERATIONS:
      raise ValueError('%r is not a supported protocol operation' %
                       (operation,))
    try:
      return self._protocol_children[operation]
    except KeyError:
      child = type(self)(name=operation, _parent=self)
      default = _PROTOCOL_DEFAULTS.get(operation)
      if default is not None:
        child._SetPolicy(default(self))
      self._protocol_children[operation] = child
      return child

  def _ChildDoubles(self):
    for child in Double._ChildDoubles(self):
      yield child
    for child in self._protocol_children.values():
      yield child

  def __len__(self):
    return self._Protocol('__len__')()

  def __iter__(self):
    result = self._Protocol('__iter__')()
    if result is self:
      return self
    return iter(result)

  def __next__(self):
    return self._Protocol('__next__')()

  def __getitem__(self, key):
    return self._Protocol('__getitem__')(key)

  def __setitem__(self, key, value):
    self._Protocol('__setitem__')(key, value)

  def __contains__(self, item):
    return self._Protocol('__contains__')(item)

  def __enter__(self):
    return self._Protocol('__enter__')()

  def __exit__(self, exc_type, exc_value, traceback):
    return self._Protocol('__exit__')(exc_type, exc_value, traceback)

  def __bool__(self):
    return True


class Call(object):
  """An expected call, matched against recorded invocations.

  Arguments are compared with the expected value on the left, so any
  Comparator (ANY included) can stand in for an argument.
  """

  def __init__(self, /, *args, **kwargs):
    self.args = args
    self.kwargs = kwargs

  def Matches(self, invocation):
    if len(self.args) != len(invocation.args):
      return False
    if set(self.kwargs) != set(invocation.kwargs):
      return False
    for expected, actual in zip(self.args, invocation.args):
      if not expected == actual:
        return False
    for key, expected in self.kwargs.items():
      if not expected == invocation.kwargs[key]:
        return False
    return True

  def Format(self, name):
    return _FormatCall(name, self.args, self.kwargs)

  def __repr__(self):
    return self.Format('Call')


def CallCount(double):
  """Return how many calls double has recorded since its last reset."""
  return len(double._Log())


def WasCalled(double):
  return CallCount(double) > 0


def WasCalledOnce(double):
  return CallCount(double) == 1


def CallArgs(double):
  """Return the most recent Invocation of double, or None."""
  calls = double._Log().Snapshot()
  if not calls:
    return None
  return calls[-1]


def CallArgsList(double):
  return double._Log().Snapshot()


def AssertNotCalled(double):
  calls = double._Log().Snapshot()
  if calls:
    raise AssertionMismatch('Expected no calls', double._FullName(), (),
                            calls)


def AssertCalledWith(double, /, *args, **kwargs):
  """Check that the most recent call to double had exactly these arguments.

  Raises:
    AssertionMismatch: there was no call, or the last one differs.
  """

  expected = Call(*args, **kwargs)
  calls = double._Log().Snapshot()
  if not calls:
    raise AssertionMismatch('Expected a call, but none was recorded',
                            double._FullName(), [expected], calls)
  if not expected.Matches(calls[-1]):
    raise AssertionMismatch('Most recent call does not match',
                            double._FullName(), [expected], calls)


def AssertCalledOnceWith(double, /, *args, **kwargs):
  calls = double._Log().Snapshot()
  if len(calls) != 1:
    raise AssertionMismatch('Expected exactly one call, got %d' % len(calls),
                            double._FullName(), [Call(*args, **kwargs)],
                            calls)
  AssertCalledWith(double, *args, **kwargs)


def AssertAnyCallMatches(double, /, *args, **kwargs):
  """Check that some recorded call to double had these arguments.

  Raises:
    AssertionMismatch: no recorded call matches.
  """

  expected = Call(*args, **kwargs)
  calls = double._Log().Snapshot()
  for invocation in calls:
    if expected.Matches(invocation):
      return
  raise AssertionMismatch('No recorded call matches', double._FullName(),
                          [expected], calls)


def _ContainsRun(expected, calls):
  width = len(expected)
  for start in range(len(calls) - width + 1):
    window = calls[start:start + width]
    if all(call.Matches(invocation)
           for call, invocation in zip(expected, window)):
      return True
  return False


def _ContainsAll(expected, calls):
  # Maximum bipartite matching, so a wildcard never takes the only call a
  # stricter expectation could use.
  candidates = [[i for i, invocation in enumerate(calls)
                 if call.Matches(invocation)] for call in expected]
  owner = {}
  for e in range(len(expected)):
    if not _Augment(e, candidates, owner):
      return False
  return True


def _Augment(start, candidates, owner):
  """Give expectation start a call, moving earlier assignments if needed.

  Searches for an augmenting path depth first with an explicit stack, so
  long expectation lists cannot exhaust the interpreter's recursion limit.

  Args:
    # start: index of the expectation to assign.
    # candidates: for each expectation, the indexes of the calls it matches.
    # owner: call index -> expectation index; updated in place on success.
    start: int
    candidates: [[int]]
    owner: dict

  Returns:
    True if start was assigned a call.
  """

  for i in candidates[start]:
    if i not in owner:
      owner[i] = start
      return True

  seen = set()
  # Each frame: (expectation, the call it gives up if moved, untried calls).
  stack = [(start, None, iter(candidates[start]))]
  while stack:
    e, _, choices = stack[-1]
    for i in choices:
      if i in seen:
        continue
      seen.add(i)
      if i not in owner:
        owner[i] = e
        for depth in range(len(stack) - 1, 0, -1):
          owner[stack[depth][1]] = stack[depth - 1][0]
        return True
      stack.append((owner[i], i, iter(candidates[owner[i]])))
      break
    else:
      stack.pop()
  return False


def AssertHasCalls(double, calls, any_order=False):
  """Check that double recorded the expected calls.

  Args:
    # calls: the expected calls.
    # any_order: if False, calls must appear as one contiguous run in the
    #   recorded order.  If True, each expected call needs its own matching
    #   recorded call anywhere in the log.
    calls: [Call]
    any_order: bool

  Raises:
    AssertionMismatch: the expected calls were not found.
    TypeError: an element of calls is not a Call.
  """

  expected = list(calls)
  for call in expected:
    if not isinstance(call, Call):
      raise TypeError('expected calls must be Call instances, not %r' %
                      (call,))
  recorded = double._Log().Snapshot()
  if any_order:
    if not _ContainsAll(expected, recorded):
      raise AssertionMismatch('Calls not all found (any order)',
                              double._FullName(), expected, recorded)
  elif not _ContainsRun(expected, recorded):
    raise AssertionMismatch('Calls not found in sequence',
                            double._FullName(), expected, recorded)


def Reset(*doubles):
  """Forget the recorded calls of the given doubles and their children."""
  for double in doubles:
    double._ResetCalls(recursive=True)


class Comparator(object):
  """Base class for all argument matchers.

  A Comparator replaces an expected argument and decides equality itself:

    understudy.AssertCalledWith(db.Query, understudy.IsA(str))

  Subclasses implement equals(rhs).
  """

  def equals(self, rhs):
    """Special equals method that all comparators must implement.

    Args:
      rhs: any python object
    """

    raise NotImplementedError('method must be implemented by a subclass.')

  def __eq__(self, rhs):
    return self.equals(rhs)

  def __ne__(self, rhs):
    return not self.equals(rhs)


class Is(Comparator):
  """Matches the very same object, not merely an equal one."""

  def __init__(self, obj):
    self._obj = obj

  def equals(self, rhs):
    return rhs is self._obj

  def __repr__(self):
    return '<is %r (%s)>' % (self._obj, id(self._obj))


class IsA(Comparator):
  """This class wraps a basic Python type or class.  It is used to verify
  that a parameter is of the given type or class.

  Example:
  understudy.AssertCalledWith(double.Query, IsA(str))
  """

  def __init__(self, class_name):
    self._class_name = class_name

  def equals(self, rhs):
    try:
      return isinstance(rhs, self._class_name)
    except TypeError:
      # Not a type: compare the raw types instead.
      return type(rhs) == type(self._class_name)

  def __repr__(self):
    return str(self._class_name)


class IsAlmost(Comparator):
  """Matches a number within the given decimal places."""

  def __init__(self, float_value, places=7):
    self._float_value = float_value
    self._places = places

  def equals(self, rhs):
    try:
      return round(rhs - self._float_value, self._places) == 0
    except TypeError:
      return False

  def __repr__(self):
    return str(self._float_value)


class StrContains(Comparator):
  """Matches a string containing the search string."""

  def __init__(self, search_string):
    self._search_string = search_string

  def equals(self, rhs):
    try:
      return rhs.find(self._search_string) > -1
    except Exception:
      return False

  def __repr__(self):
    return '<str containing \'%s\'>' % self._search_string


class Regex(Comparator):
  """Matches a string the regular expression finds a match in.

  The pattern is compiled immediately, so bad syntax fails at construction.
  """

  def __init__(self, pattern, flags=0):
    self.regex = re.compile(pattern, flags=flags)

  def equals(self, rhs):
    try:
      return self.regex.search(rhs) is not None
    except TypeError:
      return False

  def __repr__(self):
    s = '<regular expression \'%s\'' % self.regex.pattern
    if self.regex.flags & ~re.UNICODE:
      s += ', flags=%d' % (self.regex.flags & ~re.UNICODE)
    s += '>'
    return s


class In(Comparator):
  """Matches a sequence or mapping that contains key."""

  def __init__(self, key):
    self._key = key

  def equals(self, rhs):
    try:
      return self._key in rhs
    except TypeError:
      return False

  def __repr__(self):
    return '<sequence or map containing \'%s\'>' % str(self._key)


class Not(Comparator):
  """Inverts another Comparator."""

  def __init__(self, predicate):
    if not isinstance(predicate, Comparator):
      raise TypeError('predicate %r must be a Comparator.' % (predicate,))
    self._predicate = predicate

  def equals(self, rhs):
    return not self._predicate.equals(rhs)

  def __repr__(self):
    return '<not \'%s\'>' % self._predicate


class ContainsKeyValue(Comparator):
  """Matches a mapping holding value under key."""

  def __init__(self, key, value):
    self._key = key
    self._value = value

  def equals(self, rhs):
    try:
      return rhs[self._key] == self._value
    except Exception:
      return False

  def __repr__(self):
    return '<map containing the entry \'%s: %s\'>' % (str(self._key),
                                                       str(self._value))


class ContainsAttributeValue(Comparator):
  """Matches an object whose attribute key equals value."""

  def __init__(self, key, value):
    self._key = key
    self._value = value

  def equals(self, rhs):
    try:
      return getattr(rhs, self._key) == self._value
    except Exception:
      return False

  def __repr__(self):
    return '<object with attribute \'%s\' = \'%s\'>' % (str(self._key),
                                                         str(self._value))


class SameElementsAs(Comparator):
  """Matches a sequence holding the same elements in any order."""

  def __init__(self, expected_seq):
    self._expected_seq = expected_seq

  def equals(self, actual_seq):
    try:
      actual = list(actual_seq)
    except TypeError:
      return False
    expected = list(self._expected_seq)
    if len(expected) != len(actual):
      return False
    # Elements may be unhashable and unorderable, so pair them off one by one.
    for element in expected:
      for i, candidate in enumerate(actual):
        if element == candidate:
          del actual[i]
          break
      else:
        return False
    return True

  def __repr__(self):
    return '<sequence with same elements as \'%s\'>' % (self._expected_seq,)


class And(Comparator):
  """Matches only if every given Comparator matches."""

  def __init__(self, *args):
    self._comparators = args

  def equals(self, rhs):
    for comparator in self._comparators:
      if not comparator.equals(rhs):
        return False
    return True

  def __repr__(self):
    return '<AND %s>' % str(self._comparators)


class Or(Comparator):
  """Matches if any given Comparator matches."""

  def __init__(self, *args):
    self._comparators = args

  def equals(self, rhs):
    for comparator in self._comparators:
      if comparator.equals(rhs):
        return True
    return False

  def __repr__(self):
    return '<OR %s>' % str(self._comparators)


class Func(Comparator):
  """Matches when func(rhs) returns True.

  Exceptions raised by func propagate.
  """

  def __init__(self, func):
    self._func = func

  def equals(self, rhs):
    return bool(self._func(rhs))

  def __repr__(self):
    return str(self._func)


class IgnoreArg(Comparator):
  """Matches any single argument."""

  def equals(self, unused_rhs):
    return True

  def __repr__(self):
    return '<IgnoreArg>'


ANY = IgnoreArg()


class Value(Comparator):
  """Matches the value stored in it; matches nothing until one is stored."""

  def __init__(self):
    self._value = None
    self._has_value = False

  def store_value(self, rhs):
    self._value = rhs
    self._has_value = True

  def equals(self, rhs):
    if not self._has_value:
      return False
    return rhs == self._value

  def __repr__(self):
    if self._has_value:
      return '<Value %r>' % (self._value,)
    return '<Value (no value)>'


class Remember(Comparator):
  """Matches anything and stores it in a Value for later comparisons."""

  def __init__(self, value_store):
    if not isinstance(value_store, Value):
      raise TypeError('value_store %r must be a Value.' % (value_store,))
    self._value_store = value_store

  def equals(self, rhs):
    self._value_store.store_value(rhs)
    return True

  def __repr__(self):
    return '<Remember into %r>' % (self._value_store,)


class Understudy(object):
  """Creates doubles and substitutes bindings, and undoes it all together."""

  def __init__(self):
    self._doubles = []
    self.stubs = stubout.StubOutForTesting()

  def _Track(self, double):
    self._doubles.append(double)
    return double

  def CreateDouble(self, **config):
    """Create a Double; see Double.__init__ for the keywords."""
    return self._Track(Double(**config))

  def CreateProtocolDouble(self, **config):
    return self._Track(ProtocolDouble(**config))

  def StubOutWithDouble(self, owner, attr_name, use_protocols=False):
    """Replace owner.attr_name with a new double until UnsetStubs.

    Args:
      # owner: object, class, module or mapping holding the member.
      # attr_name: name of the member to replace.
      # use_protocols: create a ProtocolDouble instead of a plain Double.
      owner: object
      attr_name: str
      use_protocols: bool

    Returns:
      The installed double.

    Raises:
      PatchTargetNotFound: owner has no member attr_name.
    """

    factory = ProtocolDouble if use_protocols else Double
    double = factory(name=attr_name)
    self.stubs.Set(owner, attr_name, double)
    return self._Track(double)

  def StubOutPath(self, path, new=DEFAULT, root=None):
    """Replace the binding at a dotted path; see StubOutForTesting.SetPath."""
    if new is DEFAULT:
      new = Double(name=path)
      self._Track(new)
    return self.stubs.SetPath(path, new, root=root)

  def UnsetStubs(self, primary=None):
    """Restore every substituted binding, most recent first."""
    self.stubs.UnsetAll(primary)

  def ResetAll(self):
    """Forget the calls recorded by every double created here."""
    Reset(*self._doubles)


def _UnwindAll(scopes, primary=None):
  failures = []
  for stubs in scopes:
    try:
      stubs.UnsetAll(primary)
    except PatchRestoreFailure as e:
      failures.extend(e.failures)
  if failures:
    raise PatchRestoreFailure(failures)


class _UnderstudyMetaTestBase(type):
  """Metaclass to add cleanup to every test method.

  Wraps every test* method, including those inherited from mix-ins, so the
  understudy and stubs attributes of the test are unwound when the method
  finishes, even if it failed.
  """

  def __init__(cls, name, bases, d):
    type.__init__(cls, name, bases, d)
    for attr_name in dir(cls):
      if not attr_name.startswith('test'):
        continue
      func = getattr(cls, attr_name)
      if (isinstance(func, types.FunctionType) and
          not getattr(func, '_understudy_cleanup', False)):
        setattr(cls, attr_name, _UnderstudyMetaTestBase.CleanUpTest(func))

  @staticmethod
  def CleanUpTest(func):
    """Wrap a test method with a cleanup of substituted bindings.

    Args:
      func: the test method to wrap.

    Returns:
      The wrapped method.
    """

    @functools.wraps(func)
    def new_method(self, *args, **kwargs):
      scopes = []
      understudy_obj = getattr(self, 'understudy', None)
      if isinstance(understudy_obj, Understudy):
        scopes.append(understudy_obj.stubs)
      stubout_obj = getattr(self, 'stubs', None)
      if isinstance(stubout_obj, stubout.StubOutForTesting):
        scopes.append(stubout_obj)

      try:
        result = func(self, *args, **kwargs)
      except BaseException as e:
        _UnwindAll(scopes, e)
        raise
      _UnwindAll(scopes)
      return result

    new_method._understudy_cleanup = True
    return new_method


class UnderstudyTestBase(unittest.TestCase, metaclass=_UnderstudyMetaTestBase):
  """Convenience test class to make stubbing easier.

  Sets up an "understudy" attribute holding an Understudy and a "stubs"
  attribute holding a stubout.StubOutForTesting.  All bindings substituted
  through either are restored after each test method.
  """

  def setUp(self):
    super(UnderstudyTestBase, self).setUp()
    self.understudy = Understudy()
    self.stubs = stubout.StubOutForTesting()
