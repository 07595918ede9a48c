#!/usr/bin/env python
#
# Unit tests for stubout.
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

import unittest

import stubout
import stubout_testee
import understudy


class RecordingSlot(object):
  """A slot that journals every write; optionally refuses to be restored."""

  def __init__(self, name, journal, fail_restore=False):
    self.name = name
    self.value = 'original-%s' % name
    self.journal = journal
    self.fail_restore = fail_restore

  def Exists(self):
    return True

  def Read(self):
    return self.value

  def Write(self, value):
    if self.fail_restore and value == 'original-%s' % self.name:
      raise RuntimeError('%s is read-only now' % self.name)
    self.journal.append((self.name, value))
    self.value = value

  def Describe(self):
    return 'slot-%s' % self.name


class StubOutForTestingTest(unittest.TestCase):

  def setUp(self):
    self.stubs = stubout.StubOutForTesting()
    self.sample_function_backup = stubout_testee.SampleFunction

  def tearDown(self):
    self.stubs.UnsetAll()
    stubout_testee.SampleFunction = self.sample_function_backup

  def testSetOnModule(self):
    fake = understudy.Double()
    self.stubs.Set(stubout_testee, 'SampleFunction', fake)

    stubout_testee.UsesSampleFunction()

    understudy.AssertCalledOnceWith(fake)
    self.stubs.UnsetAll()
    self.assertIs(self.sample_function_backup, stubout_testee.SampleFunction)

  def testSetCreatesDoubleWhenNoReplacementGiven(self):
    fake = self.stubs.Set(stubout_testee, 'SampleFunction')
    self.assertIsInstance(fake, understudy.Double)
    self.assertIs(fake, stubout_testee.SampleFunction)
    self.assertEqual('stubout_testee.SampleFunction', fake._FullName())

  def testSetReturnsReplacement(self):
    self.assertEqual(5, self.stubs.Set(stubout_testee, 'TIMEOUT', 5))
    self.assertEqual(5, stubout_testee.TIMEOUT)

  def testSetMissingMemberChangesNothing(self):
    self.assertRaises(understudy.PatchTargetNotFound, self.stubs.Set,
                      stubout_testee, 'NoSuchFunction', 1)
    self.assertEqual((), self.stubs.Entries())
    self.assertFalse(hasattr(stubout_testee, 'NoSuchFunction'))

  def testSetLogsSubstitution(self):
    with self.assertLogs('stubout', level='DEBUG') as logs:
      self.stubs.Set(stubout_testee, 'TIMEOUT', 1)
      self.stubs.UnsetAll()
    self.assertIn('Stubbed out stubout_testee.TIMEOUT', logs.output[0])
    self.assertIn('Restored stubout_testee.TIMEOUT', logs.output[1])

  def testStaticMethodSurvivesRestore(self):
    self.stubs.Set(stubout_testee.Service, 'Version', lambda: 'v2')
    self.assertEqual('v2', stubout_testee.Service.Version())
    self.stubs.UnsetAll()
    self.assertIsInstance(stubout_testee.Service.__dict__['Version'],
                          staticmethod)
    self.assertEqual('v1', stubout_testee.Service().Version())

  def testClassMethodSurvivesRestore(self):
    self.stubs.Set(stubout_testee.Service, 'Create')
    self.stubs.UnsetAll()
    self.assertIsInstance(stubout_testee.Service.__dict__['Create'],
                          classmethod)
    self.assertIsInstance(stubout_testee.SubService.Create(),
                          stubout_testee.SubService)

  def testInheritedMemberIsRemovedOnRestore(self):
    fake = self.stubs.Set(stubout_testee.SubService, 'Fetch')
    fake._SetReturnValue('fake')
    self.assertEqual('fake', stubout_testee.SubService().Fetch('k'))
    self.assertEqual('live:k', stubout_testee.Service().Fetch('k'))
    self.stubs.UnsetAll()
    self.assertNotIn('Fetch', stubout_testee.SubService.__dict__)
    self.assertEqual('live:k', stubout_testee.SubService().Fetch('k'))

  def testInstanceAttribute(self):
    service = stubout_testee.Service()
    self.stubs.Set(service, 'session', 'fake-session')
    self.assertEqual('fake-session', service.session)
    self.stubs.UnsetAll()
    self.assertEqual('live-session', service.session)

  def testSettablePropertyIsWrittenBack(self):
    service = stubout_testee.Service()
    self.stubs.Set(service, 'timeout', 5)
    self.assertEqual(5, service.timeout)
    self.stubs.UnsetAll()
    self.assertEqual(30, service.timeout)
    self.assertNotIn('timeout', vars(service))

  def testInstanceMethodIsRemovedOnRestore(self):
    service = stubout_testee.Service()
    self.stubs.Set(service, 'Fetch', lambda key: 'fake:%s' % key)
    self.assertEqual('fake:k', service.Fetch('k'))
    self.stubs.UnsetAll()
    self.assertNotIn('Fetch', vars(service))
    self.assertEqual('live:k', service.Fetch('k'))

  def testMappingItem(self):
    self.stubs.Set(stubout_testee.SETTINGS, 'mode', 'test')
    self.assertEqual('test', stubout_testee.SETTINGS['mode'])
    self.stubs.UnsetAll()
    self.assertEqual({'mode': 'production', 'retries': 3},
                     stubout_testee.SETTINGS)

  def testMissingMappingItem(self):
    self.assertRaises(understudy.PatchTargetNotFound, self.stubs.Set,
                      stubout_testee.SETTINGS, 'missing', 1)
    self.assertNotIn('missing', stubout_testee.SETTINGS)

  def testMemberOfDouble(self):
    double = understudy.Double(name='svc')
    child = double.get
    self.stubs.Set(double, 'get', 'replaced')
    self.assertEqual('replaced', double.get)
    self.stubs.UnsetAll()
    self.assertIs(child, double.get)

  def testNestedSubstitutionsRestoreLayerByLayer(self):
    self.stubs.Set(stubout_testee, 'TIMEOUT', 1)
    with self.stubs.Scope():
      self.stubs.Set(stubout_testee, 'TIMEOUT', 2)
      self.assertEqual(2, stubout_testee.TIMEOUT)
    self.assertEqual(1, stubout_testee.TIMEOUT)
    self.stubs.UnsetAll()
    self.assertEqual(30, stubout_testee.TIMEOUT)

  def testSameBindingTwiceWithoutScopes(self):
    self.stubs.Set(stubout_testee, 'TIMEOUT', 1)
    self.stubs.Set(stubout_testee, 'TIMEOUT', 2)
    self.stubs.UnsetAll()
    self.assertEqual(30, stubout_testee.TIMEOUT)

  def testRestoreIsLastInFirstOut(self):
    journal = []
    self.stubs.SetSlot(RecordingSlot('a', journal), 'new-a')
    self.stubs.SetSlot(RecordingSlot('b', journal), 'new-b')
    del journal[:]
    self.stubs.UnsetAll()
    self.assertEqual([('b', 'original-b'), ('a', 'original-a')], journal)

  def testSetSlotDescribesEntry(self):
    journal = []
    self.stubs.SetSlot(RecordingSlot('a', journal))
    self.assertEqual(['slot-a'],
                     [entry.Describe() for entry in self.stubs.Entries()])

  def testUnsetAllTwiceIsHarmless(self):
    self.stubs.Set(stubout_testee, 'TIMEOUT', 1)
    self.stubs.UnsetAll()
    self.stubs.UnsetAll()
    self.assertEqual(30, stubout_testee.TIMEOUT)
    self.assertEqual((), self.stubs.Entries())


class PatchScopeTest(unittest.TestCase):
  """Verify scopes restore on every way out."""

  def setUp(self):
    self.stubs = stubout.StubOutForTesting()

  def tearDown(self):
    self.stubs.UnsetAll()

  def testWithStatementRestores(self):
    with self.stubs as stubs:
      self.assertIs(self.stubs, stubs)
      stubs.Set(stubout_testee, 'TIMEOUT', 1)
      self.assertEqual(1, stubout_testee.TIMEOUT)
    self.assertEqual(30, stubout_testee.TIMEOUT)

  def testRestoresWhenScopeRaises(self):
    with self.assertRaises(ValueError):
      with self.stubs:
        self.stubs.Set(stubout_testee, 'TIMEOUT', 1)
        raise ValueError('boom')
    self.assertEqual(30, stubout_testee.TIMEOUT)

  def testScopeOnlyRestoresItsOwnEntries(self):
    self.stubs.Set(stubout_testee, 'TIMEOUT', 1)
    with self.stubs.Scope():
      self.stubs.Set(stubout_testee.SETTINGS, 'mode', 'test')
    self.assertEqual('production', stubout_testee.SETTINGS['mode'])
    self.assertEqual(1, stubout_testee.TIMEOUT)

  def testOuterScopeUnwindsAbandonedInnerScope(self):
    with self.stubs.Scope():
      self.stubs.Set(stubout_testee, 'TIMEOUT', 1)
      inner = self.stubs.Scope()
      inner.__enter__()
      self.stubs.Set(stubout_testee, 'TIMEOUT', 2)
      self.stubs.Set(stubout_testee.SETTINGS, 'retries', 0)
    self.assertEqual(30, stubout_testee.TIMEOUT)
    self.assertEqual(3, stubout_testee.SETTINGS['retries'])
    self.assertEqual((), self.stubs.Entries())

  def testNestedWithStatements(self):
    with self.stubs:
      self.stubs.Set(stubout_testee, 'TIMEOUT', 1)
      with self.stubs:
        self.stubs.Set(stubout_testee, 'TIMEOUT', 2)
      self.assertEqual(1, stubout_testee.TIMEOUT)
    self.assertEqual(30, stubout_testee.TIMEOUT)


class RestoreFailureTest(unittest.TestCase):
  """Verify restoration is attempted for every entry even when some fail."""

  def setUp(self):
    self.journal = []
    self.stubs = stubout.StubOutForTesting()
    self.first = RecordingSlot('first', self.journal)
    self.broken = RecordingSlot('broken', self.journal, fail_restore=True)
    self.last = RecordingSlot('last', self.journal)
    for slot in (self.first, self.broken, self.last):
      self.stubs.SetSlot(slot, 'new')

  def testEveryEntryIsAttempted(self):
    self.assertRaises(understudy.PatchRestoreFailure, self.stubs.UnsetAll)
    self.assertEqual('original-first', self.first.value)
    self.assertEqual('original-last', self.last.value)
    self.assertEqual('new', self.broken.value)
    self.assertEqual((), self.stubs.Entries())

  def testFailureListsBrokenEntries(self):
    try:
      self.stubs.UnsetAll()
    except understudy.PatchRestoreFailure as e:
      self.assertEqual(1, len(e.failures))
      entry, error = e.failures[0]
      self.assertEqual('slot-broken', entry.Describe())
      self.assertIsInstance(error, RuntimeError)
      self.assertIsNone(e.primary)
      self.assertEqual("Could not restore patched bindings:\n"
                       "  0.  slot-broken: RuntimeError: broken is read-only "
                       "now", str(e))
    else:
      self.fail('PatchRestoreFailure not raised')

  def testScopeFailureWithoutPrimaryRaisesRestoreFailure(self):
    stubs = stubout.StubOutForTesting()
    with self.assertRaises(understudy.PatchRestoreFailure):
      with stubs:
        stubs.SetSlot(RecordingSlot('x', [], fail_restore=True))

  def testPrimaryFailureStaysPrimary(self):
    stubs = stubout.StubOutForTesting()
    with self.assertLogs('stubout', level='ERROR') as logs:
      with self.assertRaises(KeyError) as ctx:
        with stubs:
          stubs.SetSlot(RecordingSlot('x', [], fail_restore=True))
          stubs.Set(stubout_testee, 'TIMEOUT', 1)
          raise KeyError('protected code failed')
    self.assertEqual(30, stubout_testee.TIMEOUT)
    self.assertIn('slot-x', '\n'.join(ctx.exception.__notes__))
    self.assertIn('KeyError', logs.output[0])

  def testUnsetAllWithPrimary(self):
    primary = ValueError('test failed')
    with self.assertLogs('stubout', level='ERROR'):
      self.stubs.UnsetAll(primary)
    self.assertEqual('original-last', self.last.value)
    self.assertIn('slot-broken', primary.__notes__[0])

  def testRestoreFailureRefersToPrimary(self):
    primary = ValueError('test failed')
    entry = stubout.PatchEntry(self.first, 'new')
    failure = understudy.PatchRestoreFailure([(entry, RuntimeError())],
                                             primary)
    self.assertIs(primary, failure.primary)
    self.assertIs(primary, failure.__cause__)

  def testRestoreFailureNeedsFailures(self):
    self.assertRaises(ValueError, understudy.PatchRestoreFailure, [])


class PatchEntryTest(unittest.TestCase):

  def testRestoreHappensOnce(self):
    journal = []
    entry = stubout.PatchEntry(RecordingSlot('a', journal), 'new')
    entry.Apply()
    self.assertTrue(entry.applied)
    self.assertEqual('original-a', entry.original)
    entry.Restore()
    entry.Restore()
    self.assertFalse(entry.applied)
    self.assertEqual([('a', 'new'), ('a', 'original-a')], journal)

  def testRestoreBeforeApplyDoesNothing(self):
    journal = []
    stubout.PatchEntry(RecordingSlot('a', journal), 'new').Restore()
    self.assertEqual([], journal)

  def testFailedRestoreIsNotRetried(self):
    journal = []
    entry = stubout.PatchEntry(
        RecordingSlot('a', journal, fail_restore=True), 'new')
    entry.Apply()
    self.assertRaises(RuntimeError, entry.Restore)
    entry.Restore()
    self.assertEqual([('a', 'new')], journal)

  def testDescribe(self):
    entry = stubout.PatchEntry(
        stubout.AttributeSlot(stubout_testee, 'TIMEOUT'), 1)
    self.assertEqual('stubout_testee.TIMEOUT', entry.Describe())
    self.assertEqual('label', stubout.PatchEntry(None, 1, 'label').Describe())


class ResolvePathTest(unittest.TestCase):
  """Verify dotted paths resolve to an owner and a member name."""

  def testModuleMember(self):
    self.assertEqual((stubout_testee, 'TIMEOUT'),
                     stubout.ResolvePath('stubout_testee.TIMEOUT'))

  def testClassMember(self):
    self.assertEqual((stubout_testee.Service, 'Fetch'),
                     stubout.ResolvePath('stubout_testee.Service.Fetch'))

  def testSubmodule(self):
    import os.path
    self.assertEqual((os.path, 'join'), stubout.ResolvePath('os.path.join'))

  def testMappingComponent(self):
    owner, name = stubout.ResolvePath('stubout_testee.SETTINGS.mode')
    self.assertIs(stubout_testee.SETTINGS, owner)
    self.assertEqual('mode', name)

  def testRoot(self):
    handlers = {'default': object()}
    root = {'handlers': handlers}
    self.assertEqual((handlers, 'default'),
                     stubout.ResolvePath('handlers.default', root=root))
    self.assertEqual((stubout_testee, 'TIMEOUT'),
                     stubout.ResolvePath('TIMEOUT', root=stubout_testee))

  def testUnknownModule(self):
    self.assertRaises(understudy.PatchTargetNotFound, stubout.ResolvePath,
                      'no_such_module_for_understudy.thing')

  def testUnknownComponent(self):
    self.assertRaises(understudy.PatchTargetNotFound, stubout.ResolvePath,
                      'stubout_testee.NoSuchClass.Fetch')

  def testUnknownRootComponent(self):
    self.assertRaises(understudy.PatchTargetNotFound, stubout.ResolvePath,
                      'handlers.default', root={})

  def testNoOwner(self):
    self.assertRaises(understudy.PatchTargetNotFound, stubout.ResolvePath,
                      'SampleFunction')

  def testBadPath(self):
    self.assertRaises(understudy.PatchTargetNotFound, stubout.ResolvePath, '')
    self.assertRaises(understudy.PatchTargetNotFound, stubout.ResolvePath,
                      None)

  def testErrorNamesTarget(self):
    try:
      stubout.ResolvePath('stubout_testee.NoSuchClass.Fetch')
    except understudy.PatchTargetNotFound as e:
      self.assertEqual('stubout_testee.NoSuchClass.Fetch', e.target)
      self.assertTrue(str(e).startswith(
          'Cannot patch stubout_testee.NoSuchClass.Fetch: '))
    else:
      self.fail('PatchTargetNotFound not raised')


class SetPathTest(unittest.TestCase):

  def setUp(self):
    self.stubs = stubout.StubOutForTesting()

  def tearDown(self):
    self.stubs.UnsetAll()

  def testReplacesAndRestores(self):
    """A stubbed method answers in place of the real one until unset."""
    fake = self.stubs.SetPath('stubout_testee.Service.Fetch')
    fake._SetReturnValue('stubbed')
    self.assertEqual('stubbed', stubout_testee.Service().Fetch('k'))
    understudy.AssertCalledWith(fake, 'k')
    self.assertEqual('stubout_testee.Service.Fetch', fake._FullName())
    self.stubs.UnsetAll()
    self.assertEqual('live:k', stubout_testee.Service().Fetch('k'))

  def testMappingItem(self):
    self.stubs.SetPath('stubout_testee.SETTINGS.retries', 0)
    self.assertEqual(0, stubout_testee.SETTINGS['retries'])
    self.stubs.UnsetAll()
    self.assertEqual(3, stubout_testee.SETTINGS['retries'])

  def testWithRoot(self):
    handlers = {'default': 'real'}
    self.stubs.SetPath('handlers.default', 'fake', root={'handlers': handlers})
    self.assertEqual('fake', handlers['default'])
    self.stubs.UnsetAll()
    self.assertEqual({'default': 'real'}, handlers)

  def testMissingTargetChangesNothing(self):
    for path in ('stubout_testee.NoSuchFunction',
                 'stubout_testee.SETTINGS.missing',
                 'stubout_testee.Service.NoSuchMethod',
                 'no_such_module_for_understudy.thing'):
      self.assertRaises(understudy.PatchTargetNotFound, self.stubs.SetPath,
                        path, 1)
    self.assertEqual((), self.stubs.Entries())
    self.assertNotIn('missing', stubout_testee.SETTINGS)


class PatchTest(unittest.TestCase):
  """Verify Patch as a context manager and as a decorator."""

  def testContextManager(self):
    with stubout.Patch('stubout_testee.TIMEOUT', 5) as value:
      self.assertEqual(5, value)
      self.assertEqual(5, stubout_testee.TIMEOUT)
    self.assertEqual(30, stubout_testee.TIMEOUT)

  def testContextManagerCreatesDouble(self):
    with stubout.Patch('stubout_testee.SampleFunction') as fake:
      fake._SetReturnValue('fake')
      self.assertEqual('fake', stubout_testee.UsesSampleFunction())
    self.assertNotIsInstance(stubout_testee.SampleFunction, understudy.Double)

  def testContextManagerRestoresOnError(self):
    with self.assertRaises(ValueError):
      with stubout.Patch('stubout_testee.TIMEOUT', 5):
        raise ValueError('boom')
    self.assertEqual(30, stubout_testee.TIMEOUT)

  def testNestedSamePatcher(self):
    patcher = stubout.Patch('stubout_testee.SETTINGS.mode', 'test')
    with patcher:
      with stubout.Patch('stubout_testee.SETTINGS.mode', 'inner'):
        self.assertEqual('inner', stubout_testee.SETTINGS['mode'])
      self.assertEqual('test', stubout_testee.SETTINGS['mode'])
    self.assertEqual('production', stubout_testee.SETTINGS['mode'])

  def testRoot(self):
    with stubout.Patch('TIMEOUT', 7, root=stubout_testee):
      self.assertEqual(7, stubout_testee.TIMEOUT)
    self.assertEqual(30, stubout_testee.TIMEOUT)

  def testStartStop(self):
    patcher = stubout.Patch('stubout_testee.TIMEOUT', 9)
    self.assertEqual(9, patcher.Start())
    self.assertEqual(9, stubout_testee.TIMEOUT)
    patcher.Stop()
    self.assertEqual(30, stubout_testee.TIMEOUT)

  def testDecoratorWithValue(self):
    @stubout.Patch('stubout_testee.TIMEOUT', 5)
    def ReadTimeout(offset):
      return stubout_testee.TIMEOUT + offset

    self.assertEqual(6, ReadTimeout(1))
    self.assertEqual(30, stubout_testee.TIMEOUT)

  def testDecoratorRestoresOnError(self):
    @stubout.Patch('stubout_testee.TIMEOUT', 5)
    def Fail():
      raise KeyError('boom')

    self.assertRaises(KeyError, Fail)
    self.assertEqual(30, stubout_testee.TIMEOUT)

  def testDecoratorKeepsName(self):
    @stubout.Patch('stubout_testee.TIMEOUT', 5)
    def ReadTimeout():
      """Read the timeout."""

    self.assertEqual('ReadTimeout', ReadTimeout.__name__)
    self.assertEqual('Read the timeout.', ReadTimeout.__doc__)

  @stubout.Patch('stubout_testee.SampleFunction')
  def testDecoratorAppendsDouble(self, fake_sample_function):
    fake_sample_function._SetReturnValue('fake')
    self.assertEqual('fake', stubout_testee.UsesSampleFunction())
    understudy.AssertCalledOnceWith(fake_sample_function)


if __name__ == '__main__':
  unittest.main()
