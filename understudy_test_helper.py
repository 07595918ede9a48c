#!/usr/bin/env python
#
# A very basic test class derived from understudy.UnderstudyTestBase, used by
# understudy_test.py, plus module-level patch targets.
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

import os

import understudy


class ExampleUnderstudyTestMixin(object):
  """Mix-in class for understudy test case class.

  It stubs out the same function as one of the test methods in
  the example test case.  Both tests must pass as stubs are not
  expected to persist beyond the scope of the test.
  """

  def testStat(self):
    stat = self.understudy.StubOutWithDouble(os, 'stat')
    stat._SetReturnValue('stat-result')
    self.assertEqual('stat-result', os.stat('/'))
    understudy.AssertCalledWith(stat, '/')


class ExampleUnderstudyTest(understudy.UnderstudyTestBase,
                            ExampleUnderstudyTestMixin):

  DIR_PATH = '/path/to/some/directory'

  def testSuccess(self):
    listdir = self.understudy.StubOutWithDouble(os, 'listdir')
    listdir._SetReturnValue(['.', '..'])
    self.assertEqual(['.', '..'], os.listdir(self.DIR_PATH))
    understudy.AssertCalledOnceWith(listdir, self.DIR_PATH)

  def testCallNotMade(self):
    listdir = self.understudy.StubOutWithDouble(os, 'listdir')
    understudy.AssertCalledWith(listdir, self.DIR_PATH)

  def testWrongArguments(self):
    listdir = self.understudy.StubOutWithDouble(os, 'listdir')
    os.listdir('/tmp')
    understudy.AssertCalledWith(listdir, self.DIR_PATH)

  def testFailure(self):
    self.understudy.StubOutWithDouble(os, 'listdir')
    self.assertTrue(False)

  def testStatOther(self):
    stat = self.understudy.StubOutWithDouble(os, 'stat')
    stat._SetReturnValue('other-stat-result')
    self.assertEqual('other-stat-result', os.stat('/'))

  def testHasStubs(self):
    listdir_list = []

    def FakeListdir(directory):
      listdir_list.append(directory)

    self.stubs.Set(os, 'listdir', FakeListdir)
    os.listdir(self.DIR_PATH)
    self.assertEqual([self.DIR_PATH], listdir_list)

  def testRestoreFails(self):
    self.stubs.SetSlot(BrokenSlot())

  def testRestoreFailsAfterFailure(self):
    self.stubs.SetSlot(BrokenSlot())
    self.stubs.Set(os, 'listdir')
    raise ValueError('test body failed')


class BrokenSlot(object):
  """A slot that accepts a replacement once and refuses everything after."""

  def __init__(self):
    self.value = 'original'
    self.writes = 0

  def Exists(self):
    return True

  def Read(self):
    return self.value

  def Write(self, value):
    self.writes += 1
    if self.writes > 1:
      raise RuntimeError('slot is read-only now')
    self.value = value

  def Describe(self):
    return 'broken-slot'


def MyTestFunction(one, two, nine=None):
  pass


class ExampleClass(object):

  def __init__(self, foo='bar'):
    self.foo = foo

  def TestMethod(self, one, two, nine=None):
    return 'real'

  @staticmethod
  def StaticMethod():
    return 'static'


class ChildExampleClass(ExampleClass):
  pass


class TestClassFromAnotherModule(object):

  def __init__(self):
    return None

  def Value(self):
    return 'Not mock'


class CallableClass(object):

  def __init__(self, one, two, nine=None):
    pass

  def __call__(self, one):
    return 'Not mock'
