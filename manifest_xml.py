# Copyright (C) 2008 The Android Open Source Project
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

"""The manifest model and the XML loader that builds it."""

import os
import re
import xml.dom.minidom
import xml.parsers.expat

from error import IncludeCycleError
from error import ManifestIncludeError
from error import ManifestInvalidPathError
from error import ManifestParseError
from error import ManifestSchemaError
import platform_utils
from project import Annotation
from project import CopyFile
from project import LinkFile
from project import Project
from project import RemoteSpec
from repo_logging import RepoLogger


MANIFEST_FILE_NAME = "manifest.xml"
LOCAL_MANIFESTS_DIR_NAME = os.path.join(".repo", "local_manifests")

# Fallbacks for manifests that have no <default> element.
DEFAULT_REMOTE = "origin"
DEFAULT_REVISION = "main"

logger = RepoLogger(__file__)


def XmlBool(value, attr, default=None):
    """Determine boolean value of the |attr| attribute |value|.

    Invalid values will issue a non-fatal warning.

    Args:
        value: The raw attribute string (or None when absent).
        attr: The attribute name, for diagnostics.
        default: If the attribute is not set (value is empty), then use this.

    Returns:
        True if the attribute is a valid string representing true.
        False if the attribute is a valid string representing false.
        |default| otherwise.
    """
    s = (value or "").lower()
    if s == "":
        return default
    elif s in {"yes", "true", "1"}:
        return True
    elif s in {"no", "false", "0"}:
        return False
    else:
        logger.warning(
            'warning: manifest: %s="%s": ignoring invalid XML boolean',
            attr,
            value,
        )
        return default


class _XmlElement:
    """A manifest element kept as a validated bag of attributes.

    Attribute values are stored verbatim as strings; None means absent.
    """

    TAG = None
    # (XML attribute, python attribute) pairs in document order.
    XML_ATTRS = ()
    # XML attributes that must be present and non-empty.
    REQUIRED = ()

    def __init__(self, **kwargs):
        for _, attr in self.XML_ATTRS:
            setattr(self, attr, kwargs.pop(attr, None))
        if kwargs:
            raise TypeError(
                "%s: unknown attributes: %s"
                % (type(self).__name__, ", ".join(sorted(kwargs)))
            )
        for xml_attr, attr in self.XML_ATTRS:
            if xml_attr in self.REQUIRED and not getattr(self, attr):
                raise ManifestSchemaError(f"no {xml_attr} in <{self.TAG}>")

    def __eq__(self, other):
        if type(self) is not type(other):
            return False
        return self.__dict__ == other.__dict__

    def __repr__(self):
        attrs = ", ".join(
            f"{attr}={getattr(self, attr)!r}"
            for _, attr in self.XML_ATTRS
            if getattr(self, attr) is not None
        )
        return f"{type(self).__name__}({attrs})"


class _Default(_XmlElement):
    """Project defaults within the manifest."""

    TAG = "default"
    XML_ATTRS = (
        ("remote", "remote"),
        ("revision", "revision"),
        ("dest-branch", "dest_branch"),
        ("upstream", "upstream"),
        ("sync-j", "sync_j"),
        ("sync-c", "sync_c"),
        ("sync-s", "sync_s"),
        ("sync-tags", "sync_tags"),
    )


class _XmlRemote(_XmlElement):
    TAG = "remote"
    XML_ATTRS = (
        ("name", "name"),
        ("alias", "alias"),
        ("fetch", "fetch"),
        ("pushurl", "pushurl"),
        ("review", "review"),
        ("revision", "revision"),
    )
    REQUIRED = ("name", "fetch")

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.annotations = []

    def ToRemoteSpec(self, projectName):
        fetchUrl = self.fetch.rstrip("/")
        url = f"{fetchUrl}/{projectName}.git"
        remoteName = self.name
        if self.alias:
            remoteName = self.alias
        return RemoteSpec(remoteName, url=url)

    def AddAnnotation(self, name, value, keep):
        self.annotations.append(Annotation(name, value, keep))


class _ManifestServer(_XmlElement):
    TAG = "manifest-server"
    XML_ATTRS = (("url", "url"),)
    REQUIRED = ("url",)


class _XmlSubmanifest(_XmlElement):
    """Manage the <submanifest> element specified in the manifest."""

    TAG = "submanifest"
    XML_ATTRS = (
        ("name", "name"),
        ("remote", "remote"),
        ("project", "project"),
        ("manifest-name", "manifest_name"),
        ("revision", "revision"),
        ("path", "path"),
        ("groups", "groups"),
        ("default-groups", "default_groups"),
    )
    REQUIRED = ("name",)

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.annotations = []

    def AddAnnotation(self, name, value, keep):
        self.annotations.append(Annotation(name, value, keep))


class _ExtendProject(_XmlElement):
    TAG = "extend-project"
    XML_ATTRS = (
        ("name", "name"),
        ("path", "path"),
        ("dest-path", "dest_path"),
        ("groups", "groups"),
        ("revision", "revision"),
        ("remote", "remote"),
        ("dest-branch", "dest_branch"),
        ("upstream", "upstream"),
        ("base-rev", "base_rev"),
    )
    REQUIRED = ("name",)


class _RemoveProject(_XmlElement):
    TAG = "remove-project"
    XML_ATTRS = (
        ("name", "name"),
        ("path", "path"),
        ("optional", "optional"),
        ("base-rev", "base_rev"),
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if not self.name and not self.path:
            raise ManifestSchemaError(
                f"<{self.TAG}> requires at least one of name or path"
            )

    @property
    def is_optional(self):
        return XmlBool(self.optional, "optional", False)


class _RepoHooks(_XmlElement):
    TAG = "repo-hooks"
    XML_ATTRS = (("in-project", "in_project"), ("enabled-list", "enabled_list"))


class _Superproject(_XmlElement):
    TAG = "superproject"
    XML_ATTRS = (("name", "name"), ("remote", "remote"), ("revision", "revision"))
    REQUIRED = ("name",)


class _ContactInfo(_XmlElement):
    TAG = "contactinfo"
    XML_ATTRS = (("bugurl", "bugurl"),)
    REQUIRED = ("bugurl",)


class _Include(_XmlElement):
    TAG = "include"
    XML_ATTRS = (("name", "name"), ("groups", "groups"), ("revision", "revision"))


def _ReadAttrs(node, cls):
    """Collect the attributes |cls| knows about from |node|, verbatim."""
    kwargs = {}
    for xml_attr, attr in cls.XML_ATTRS:
        if node.hasAttribute(xml_attr):
            kwargs[attr] = node.getAttribute(xml_attr)
    return kwargs


def _CheckLocalPath(path, dir_ok=False, cwd_dot_ok=False):
    """Verify |path| is reasonable for use in filesystem paths.

    Used with <copyfile> & <linkfile> & <project> elements.

    This only validates the |path| in isolation: it does not check against the
    current filesystem state.  Thus it is suitable as a first-past in a parser.

    It enforces a number of constraints:
    * No empty paths.
    * No "~" in paths.
    * No Unicode codepoints that filesystems might elide when normalizing.
    * No relative path components like "." or "..".
    * No absolute paths.
    * No ".git" or ".repo*" path components.

    Args:
        path: The path name to validate.
        dir_ok: Whether |path| may force a directory (e.g. end in a /).
        cwd_dot_ok: Whether |path| may be just ".".

    Returns:
        None if |path| is OK, a failure message otherwise.
    """
    if not path:
        return "empty paths not allowed"

    if "~" in path:
        return "~ not allowed (due to 8.3 filenames on Windows filesystems)"

    path_codepoints = set(path)

    # Some filesystems (like Apple's HFS+) try to normalize Unicode codepoints
    # which means there are alternative names for ".git".  Reject paths with
    # these in it as there shouldn't be any reasonable need for them here.
    BAD_CODEPOINTS = {
        "‌",  # ZERO WIDTH NON-JOINER
        "‍",  # ZERO WIDTH JOINER
        "‎",  # LEFT-TO-RIGHT MARK
        "‏",  # RIGHT-TO-LEFT MARK
        "‪",  # LEFT-TO-RIGHT EMBEDDING
        "‫",  # RIGHT-TO-LEFT EMBEDDING
        "‬",  # POP DIRECTIONAL FORMATTING
        "‭",  # LEFT-TO-RIGHT OVERRIDE
        "‮",  # RIGHT-TO-LEFT OVERRIDE
        "⁪",  # INHIBIT SYMMETRIC SWAPPING
        "⁫",  # ACTIVATE SYMMETRIC SWAPPING
        "⁬",  # INHIBIT ARABIC FORM SHAPING
        "⁭",  # ACTIVATE ARABIC FORM SHAPING
        "⁮",  # NATIONAL DIGIT SHAPES
        "⁯",  # NOMINAL DIGIT SHAPES
        "﻿",  # ZERO WIDTH NO-BREAK SPACE
    }
    if BAD_CODEPOINTS & path_codepoints:
        # This message is more expansive than reality, but should be fine.
        return "Unicode combining characters not allowed"

    # Reject newlines as there shouldn't be any legitmate use for them, they'll
    # be confusing to users, and they can easily break tools that expect to be
    # able to iterate over newline delimited lists.
    if {"\r", "\n"} & path_codepoints:
        return "Newlines not allowed"

    # Assume paths might be used on case-insensitive filesystems.
    path = path.lower()

    # Split up the path by its components.  We can't use os.path.sep
    # exclusively as some platforms (like Windows) will convert / to \ and
    # that bypasses all our constructed logic here.  Especially since manifest
    # authors only use / in their paths.
    resep = re.compile(r"[/%s]" % re.escape(os.path.sep))
    # Strip off trailing slashes as those only produce '' elements, and we use
    # parts to look for individual bad components.
    parts = resep.split(path.rstrip("/"))

    # Some people use src="." to create stable links to projects.  Lets allow
    # that but reject all other uses of "." to keep things simple.
    if not cwd_dot_ok or parts != ["."]:
        for part in set(parts):
            if part in {".", "..", ".git"} or part.startswith(".repo"):
                return f"bad component: {part}"

    if not dir_ok and resep.match(path[-1]):
        return "dirs not allowed"

    # NB: The two abspath checks here are to handle platforms with multiple
    # filesystem path styles (e.g. Windows).
    norm = os.path.normpath(path)
    if (
        norm == ".."
        or (
            len(norm) >= 3
            and norm.startswith("..")
            and resep.match(norm[0])
        )
        or os.path.isabs(norm)
        or norm.startswith("/")
    ):
        return "path cannot be outside"


def _ValidateFilePaths(element, src, dest):
    """Verify |src| & |dest| are reasonable for <copyfile> & <linkfile>.

    We verify the path independent of any filesystem state as we won't have a
    checkout available to compare to.  i.e. This is for parsing validation
    purposes only.

    We'll do full/live sanity checking before we do the actual filesystem
    modifications in CopyFile/LinkFile.
    """
    # |dest| is the file we write to or symlink we create.
    # It is relative to the top of the checkout tree.
    msg = _CheckLocalPath(dest)
    if msg:
        raise ManifestInvalidPathError(
            f'<{element}> invalid "dest": {dest}: {msg}'
        )

    # |src| is the file we read from or path we point to for symlinks.
    # It is relative to the top of the git project checkout.
    is_linkfile = element == "linkfile"
    msg = _CheckLocalPath(src, dir_ok=is_linkfile, cwd_dot_ok=is_linkfile)
    if msg:
        raise ManifestInvalidPathError(
            f'<{element}> invalid "src": {src}: {msg}'
        )


class XmlManifest:
    """A manifest document (plus everything it includes), as a model.

    Sequences keep document order; single-valued elements keep the last one
    seen.
    """

    def __init__(self, manifest_file, local=False):
        """Initialize.

        Args:
            manifest_file: The XML file this manifest is loaded from.
            local: Whether this is a local overlay managed by the user, in
                which case project names and paths are not restricted.
        """
        self.manifestFile = manifest_file
        self.local = local
        self.notice = None
        self.remotes = []
        self.default = None
        self.manifest_server = None
        self.submanifests = []
        self.remove_projects = []
        self.projects = []
        self.extend_projects = []
        self.repo_hooks = None
        self.superproject = None
        self.contactinfo = None
        self.includes = []
        self.copyfiles = []
        self.linkfiles = []
        self.annotations = []

    def __repr__(self):
        return f"<XmlManifest {self.manifestFile}>"

    def GetRemote(self, name):
        """Return the <remote> called |name|, or None.

        When several remotes share a name, the last one defined wins.
        """
        for remote in reversed(self.remotes):
            if remote.name == name:
                return remote
        return None

    def Load(
        self, default_remote=DEFAULT_REMOTE, default_revision=DEFAULT_REVISION
    ):
        """Read the manifest file (and its includes) into memory.

        Args:
            default_remote: Remote of the synthesized <default> when the
                document has none.
            default_revision: Revision of the synthesized <default> when the
                document has none.

        Raises:
            ManifestParseError: The XML is malformed or fails validation.
            OSError: The manifest file itself cannot be read.
        """
        self._ParseManifestXml(self.manifestFile, [])

        if self.default is None and (
            default_remote is not None or default_revision is not None
        ):
            self.default = _Default(
                remote=default_remote, revision=default_revision
            )
        return self

    def _ParseManifestXml(self, path, include_stack):
        """Parse one XML file into this manifest.

        Args:
            path: The XML file to read & parse.
            include_stack: The canonical paths of the files currently being
                loaded, outermost first.
        """
        real = platform_utils.realpath(path)
        if real in include_stack:
            raise IncludeCycleError(include_stack + [real])

        try:
            root = xml.dom.minidom.parse(path)
        except xml.parsers.expat.ExpatError as e:
            raise ManifestParseError(f"error parsing manifest {path}: {e}")

        manifest = root.documentElement
        if manifest is None or manifest.nodeName != "manifest":
            raise ManifestParseError(f"no <manifest> in {path}")

        self._ParseNodes(manifest, path, include_stack + [real], None)

    def _ParseNodes(self, parent_node, path, include_stack, owner):
        for node in parent_node.childNodes:
            if node.nodeType != node.ELEMENT_NODE:
                continue
            if node.nodeName == "include":
                self._ParseInclude(node, path, include_stack)
                continue
            try:
                children_owner = self._ParseNode(node, owner)
            except ManifestSchemaError as e:
                raise ManifestSchemaError(f"{e} within {path}") from e
            # Unknown elements are skipped, but what they contain is not.
            if node.hasChildNodes():
                self._ParseNodes(node, path, include_stack, children_owner)

    def _ParseNode(self, node, owner):
        """Add the element |node| to the model.

        Returns:
            The object nested <copyfile>, <linkfile> and <annotation>
            elements attach to.
        """
        name = node.nodeName
        children_owner = owner
        if name == "notice":
            self.notice = self._ParseNotice(node)
        elif name == "remote":
            remote = _XmlRemote(**_ReadAttrs(node, _XmlRemote))
            self.remotes.append(remote)
            children_owner = remote
        elif name == "default":
            self.default = _Default(**_ReadAttrs(node, _Default))
        elif name == "manifest-server":
            self.manifest_server = _ManifestServer(
                **_ReadAttrs(node, _ManifestServer)
            )
        elif name == "submanifest":
            submanifest = _XmlSubmanifest(**_ReadAttrs(node, _XmlSubmanifest))
            self.submanifests.append(submanifest)
            children_owner = submanifest
        elif name == "remove-project":
            self.remove_projects.append(
                _RemoveProject(**_ReadAttrs(node, _RemoveProject))
            )
        elif name == "project":
            project = self._ParseProject(node)
            self.projects.append(project)
            children_owner = project
        elif name == "extend-project":
            self.extend_projects.append(
                _ExtendProject(**_ReadAttrs(node, _ExtendProject))
            )
        elif name == "repo-hooks":
            self.repo_hooks = _RepoHooks(**_ReadAttrs(node, _RepoHooks))
        elif name == "superproject":
            self.superproject = _Superproject(**_ReadAttrs(node, _Superproject))
        elif name == "contactinfo":
            self.contactinfo = _ContactInfo(**_ReadAttrs(node, _ContactInfo))
        elif name == "copyfile":
            self._ParseCopyFile(node, owner)
        elif name == "linkfile":
            self._ParseLinkFile(node, owner)
        elif name == "annotation":
            self._ParseAnnotation(node, owner)
        return children_owner

    def _ParseNotice(self, node):
        """Reads a <notice> element from the manifest file.

        The text between the start and end tag is kept verbatim.
        """
        return "".join(
            n.data
            for n in node.childNodes
            if n.nodeType in (n.TEXT_NODE, n.CDATA_SECTION_NODE)
        )

    def _ParseProject(self, node):
        """Reads a <project> element from the manifest file."""
        attrs = _ReadAttrs(node, Project)
        if not attrs.get("name"):
            raise ManifestSchemaError("no name in <project>")
        project = Project(**attrs)

        # Users may point their own overlays anywhere they like.
        if not self.local:
            msg = _CheckLocalPath(project.name, dir_ok=True)
            if msg:
                raise ManifestInvalidPathError(
                    f'<project> invalid "name": {project.name}: {msg}'
                )
            if project.path is not None:
                msg = _CheckLocalPath(project.path, dir_ok=True)
                if msg:
                    raise ManifestInvalidPathError(
                        f'<project> invalid "path": {project.path}: {msg}'
                    )
        return project

    def _ParseInclude(self, node, path, include_stack):
        include = _Include(**_ReadAttrs(node, _Include))
        self.includes.append(include)
        if not include.name:
            logger.warning(
                "warning: %s: ignoring <include> without a name", path
            )
            return

        include_path = os.path.join(os.path.dirname(path), include.name)
        if not os.path.isfile(include_path):
            raise ManifestIncludeError(
                f"include {include_path} doesn't exist or isn't a file"
            )
        try:
            self._ParseManifestXml(include_path, include_stack)
        except ManifestParseError:
            raise
        except OSError as e:
            raise ManifestIncludeError(
                f"failed reading included manifest {include.name}: {e}"
            )

    def _ParseCopyFile(self, node, owner):
        directive = self._ParseFileDirective(node, CopyFile, "copyfile", owner)
        if isinstance(owner, Project):
            owner.copyfiles.append(directive)
        self.copyfiles.append(directive)

    def _ParseLinkFile(self, node, owner):
        directive = self._ParseFileDirective(node, LinkFile, "linkfile", owner)
        if isinstance(owner, Project):
            owner.linkfiles.append(directive)
        self.linkfiles.append(directive)

    def _ParseFileDirective(self, node, cls, element, owner):
        src = self._reqatt(node, "src")
        dest = self._reqatt(node, "dest")
        # src is project relative;
        # dest is relative to the top of the tree.
        _ValidateFilePaths(element, src, dest)
        project = owner if isinstance(owner, Project) else None
        return cls(src, dest, project=project)

    def _ParseAnnotation(self, node, owner):
        name = self._reqatt(node, "name")
        value = self._reqatt(node, "value")
        keep = node.getAttribute("keep").lower() or "true"
        if keep not in ("true", "false"):
            raise ManifestParseError(
                'optional "keep" attribute must be "true" or "false"'
            )
        annotation = Annotation(name, value, keep == "true")
        if owner is not None:
            owner.AddAnnotation(name, value, keep == "true")
        self.annotations.append(annotation)

    def _reqatt(self, node, attname):
        """Reads a required attribute from the node."""
        v = node.getAttribute(attname)
        if not v:
            raise ManifestSchemaError(f"no {attname} in <{node.nodeName}>")
        return v

    def ToXml(self):
        """Return the manifest as a minidom Document."""
        doc = xml.dom.minidom.Document()
        root = doc.createElement("manifest")
        doc.appendChild(root)

        if self.notice:
            e = doc.createElement("notice")
            e.appendChild(doc.createTextNode(self.notice))
            root.appendChild(e)

        def append(parent, tag, obj, attrs=None):
            e = doc.createElement(tag)
            for xml_attr, attr in obj.XML_ATTRS:
                value = getattr(obj, attr)
                if attrs and attr in attrs:
                    value = attrs[attr]
                if value is not None:
                    e.setAttribute(xml_attr, value)
            parent.appendChild(e)
            return e

        def append_annotations(parent, annotations):
            for a in annotations:
                append(
                    parent,
                    "annotation",
                    a,
                    {"keep": "true" if a.keep else "false"},
                )

        for r in self.remotes:
            append_annotations(append(root, "remote", r), r.annotations)
        if self.default is not None:
            append(root, "default", self.default)
        if self.manifest_server is not None:
            append(root, "manifest-server", self.manifest_server)
        for s in self.submanifests:
            append_annotations(append(root, "submanifest", s), s.annotations)
        for r in self.remove_projects:
            append(root, "remove-project", r)
        for p in self.projects:
            e = append(root, "project", p)
            for c in p.copyfiles:
                append(e, "copyfile", c)
            for c in p.linkfiles:
                append(e, "linkfile", c)
            append_annotations(e, p.annotations)
        for x in self.extend_projects:
            append(root, "extend-project", x)
        if self.repo_hooks is not None:
            append(root, "repo-hooks", self.repo_hooks)
        if self.superproject is not None:
            append(root, "superproject", self.superproject)
        if self.contactinfo is not None:
            append(root, "contactinfo", self.contactinfo)
        for c in self.copyfiles:
            if c.project is None:
                append(root, "copyfile", c)
        for c in self.linkfiles:
            if c.project is None:
                append(root, "linkfile", c)

        # Includes are already expanded above, so they are not written back.
        return doc

    def ToDict(self):
        """Return the current manifest as a dictionary."""
        # Elements that may only appear once.
        SINGLE_ELEMENTS = {
            "default",
            "manifest-server",
            "repo-hooks",
            "superproject",
            "contactinfo",
        }
        # Elements that may be repeated.
        MULTI_ELEMENTS = {
            "remote",
            "submanifest",
            "remove-project",
            "project",
            "extend-project",
            # These are children of other nodes.
            "annotation",
            "copyfile",
            "linkfile",
        }

        doc = self.ToXml()
        ret = {}
        if self.notice:
            ret["notice"] = self.notice

        def append_children(ret, node):
            for child in node.childNodes:
                if child.nodeType != xml.dom.Node.ELEMENT_NODE:
                    continue
                if child.nodeName == "notice":
                    continue
                attrs = child.attributes
                element = dict(
                    (attrs.item(i).localName, attrs.item(i).value)
                    for i in range(attrs.length)
                )
                if child.nodeName in SINGLE_ELEMENTS:
                    ret[child.nodeName] = element
                elif child.nodeName in MULTI_ELEMENTS:
                    ret.setdefault(child.nodeName, []).append(element)
                else:
                    raise ManifestParseError(
                        'Unhandled element "%s"' % (child.nodeName,)
                    )

                append_children(element, child)

        append_children(ret, doc.documentElement)
        return ret

    def Save(self, fd):
        """Write the manifest XML to |fd|."""
        doc = self.ToXml()
        doc.writexml(fd, "", "  ", "\n", "UTF-8")
