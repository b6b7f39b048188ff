# Copyright (C) 2009 The Android Open Source Project
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

import sys
import threading
import time


_TTY = sys.stderr.isatty()

# This will erase all content in the current line after the cursor.  This is
# useful for partial updates & progress messages as the terminal can display
# it better.
CSI_ERASE_LINE_AFTER = "\x1b[K"


def convert_to_hms(total):
    """Converts a period of seconds to hours, minutes, and seconds."""
    hours, rem = divmod(total, 3600)
    mins, secs = divmod(rem, 60)
    return int(hours), int(mins), secs


def duration_str(total):
    """A less noisy timedelta.__str__.

    The default timedelta stringification contains a lot of leading zeros and
    uses microsecond resolution.  This makes for noisy output.
    """
    hours, mins, secs = convert_to_hms(total)
    ret = f"{secs:.3f}s"
    if mins:
        ret = f"{mins}m{ret}"
    if hours:
        ret = f"{hours}h{ret}"
    return ret


def jobs_str(total):
    return f"{total} job{'s' if total > 1 else ''}"


class Progress:
    """Single-line progress meter on stderr.

    Workers may call start/finish/update concurrently.
    """

    def __init__(self, title, total=0, units="", delay=True, quiet=False):
        self._title = title
        self._total = total
        self._done = 0
        self._start = time.time()
        self._show = not delay
        self._units = units
        self._quiet = quiet
        self._ended = False
        self._lock = threading.Lock()

        # Only show the active jobs section if we run more than one in parallel.
        self._show_jobs = False
        self._active = 0
        self._last_msg = None

    @property
    def done(self):
        return self._done

    def _write(self, s):
        sys.stderr.write("\r" + s)
        sys.stderr.flush()

    def start(self, name):
        with self._lock:
            self._active += 1
            if not self._show_jobs:
                self._show_jobs = self._active > 1
        self.update(inc=0, msg="started " + name)

    def finish(self, name):
        self.update(msg="finished " + name)
        with self._lock:
            self._active -= 1

    def update(self, inc=1, msg=None):
        """Updates the progress indicator.

        Args:
            inc: The number of items completed.
            msg: The message to display. If None, use the last message.
        """
        with self._lock:
            self._done += inc
            if msg is None:
                msg = self._last_msg
            self._last_msg = msg

            if not _TTY or self._quiet:
                return

            if not self._show:
                if 0.5 <= time.time() - self._start:
                    self._show = True
                else:
                    return

            if self._total <= 0:
                self._write(
                    "%s: %d,%s" % (self._title, self._done, CSI_ERASE_LINE_AFTER)
                )
            else:
                p = (100 * self._done) / self._total
                if self._show_jobs:
                    jobs = f"[{jobs_str(self._active)}] "
                else:
                    jobs = ""
                self._write(
                    "%s: %2d%% %s(%d%s/%d%s) %s%s"
                    % (
                        self._title,
                        p,
                        jobs,
                        self._done,
                        self._units,
                        self._total,
                        self._units,
                        msg or "",
                        CSI_ERASE_LINE_AFTER,
                    )
                )

    def end(self):
        with self._lock:
            if self._ended:
                return
            self._ended = True

            if not _TTY or self._quiet:
                return

            duration = duration_str(time.time() - self._start)
            if self._total <= 0:
                self._write(
                    "%s: %d, done in %s%s\n"
                    % (self._title, self._done, duration, CSI_ERASE_LINE_AFTER)
                )
            else:
                p = (100 * self._done) / self._total
                self._write(
                    "%s: %3d%% (%d%s/%d%s), done in %s%s\n"
                    % (
                        self._title,
                        p,
                        self._done,
                        self._units,
                        self._total,
                        self._units,
                        duration,
                        CSI_ERASE_LINE_AFTER,
                    )
                )
