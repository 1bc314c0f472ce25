"""Bootstrap scripts injected into the worker process at spawn time."""

import json

PHANTOMJS_SCRIPT_NAME: str = "shim.js"
PYTHON_SCRIPT_NAME: str = "shim.py"

PHANTOMJS_SHIM: str = r"""
var system = require('system');
var webpage = require('webpage');
var webserver = require('webserver');

/*
 * REFS
 */

var refID = 0;
var refs = {};

// Registers a value and returns its ref, reusing an existing entry.
function createRef(value) {
	for (var key in refs) {
		if (refs.hasOwnProperty(key) && refs[key] === value) {
			return {id: key};
		}
	}
	refID++;
	refs[refID.toString()] = value;
	return {id: refID.toString()};
}

// Returns a referenced value, failing for unknown IDs.
function ref(id) {
	if (typeof id !== 'string' || !refs.hasOwnProperty(id)) {
		throw new Error('unknown reference: ' + JSON.stringify(id));
	}
	return refs[id];
}

// Removes every entry referencing a value. Absent values are ignored.
function deleteRef(value) {
	for (var key in refs) {
		if (refs.hasOwnProperty(key) && refs[key] === value) {
			delete refs[key];
		}
	}
}

// Collects a page and the pages it owns, owned pages first.
function collectOwned(page, out) {
	if (out.indexOf(page) !== -1) {
		return out;
	}
	var pages = (page.pages || []).slice();
	for (var i = 0; i < pages.length; i++) {
		collectOwned(pages[i], out);
	}
	out.push(page);
	return out;
}

/*
 * DISPATCH
 */

var routes = {};

function parse(request) {
	return request.post ? JSON.parse(request.post) : {};
}

function reply(response, value) {
	response.statusCode = 200;
	if (value !== undefined) {
		response.setHeader('Content-Type', 'application/json');
		response.write(JSON.stringify(value));
	}
	response.closeGracefully();
}

function getter(name) {
	return function(msg) { return {value: ref(msg.ref)[name]}; };
}

function setter(name, key) {
	return function(msg) { ref(msg.ref)[name] = msg[key]; };
}

function action(name) {
	return function(msg) { ref(msg.ref)[name](); };
}

// Remote field name -> [native property, setter request key].
var fields = {
	CanGoBack: ['canGoBack'],
	CanGoForward: ['canGoForward'],
	ClipRect: ['clipRect', 'rect'],
	Content: ['content', 'content'],
	Cookies: ['cookies', 'cookies'],
	CustomHeaders: ['customHeaders', 'headers'],
	FocusedFrameName: ['focusedFrameName'],
	FrameContent: ['frameContent', 'content'],
	FrameName: ['frameName'],
	FramePlainText: ['framePlainText'],
	FrameTitle: ['frameTitle'],
	FrameURL: ['frameUrl'],
	FrameCount: ['framesCount'],
	FrameNames: ['framesName'],
	LibraryPath: ['libraryPath', 'path'],
	NavigationLocked: ['navigationLocked', 'value'],
	OfflineStoragePath: ['offlineStoragePath'],
	OfflineStorageQuota: ['offlineStorageQuota'],
	OwnsPages: ['ownsPages', 'value'],
	PageWindowNames: ['pagesWindowName'],
	PlainText: ['plainText'],
	Title: ['title'],
	URL: ['url']
};

for (var field in fields) {
	if (fields.hasOwnProperty(field)) {
		routes['/webpage/' + field] = getter(fields[field][0]);
		if (fields[field].length > 1) {
			routes['/webpage/Set' + field] = setter(fields[field][0], fields[field][1]);
		}
	}
}

var actions = {
	GoBack: 'goBack',
	GoForward: 'goForward',
	Reload: 'reload',
	Stop: 'stop',
	SwitchToMainFrame: 'switchToMainFrame',
	SwitchToParentFrame: 'switchToParentFrame'
};

for (var name in actions) {
	if (actions.hasOwnProperty(name)) {
		routes['/webpage/' + name] = action(actions[name]);
	}
}

routes['/webpage/Create'] = function(msg) {
	return {ref: createRef(webpage.create())};
};

routes['/webpage/Pages'] = function(msg) {
	return {refs: ref(msg.ref).pages.map(function(p) { return createRef(p); })};
};

routes['/webpage/Close'] = function(msg) {
	var owned = collectOwned(ref(msg.ref), []);
	var firstError = null;
	for (var i = 0; i < owned.length; i++) {
		deleteRef(owned[i]);
	}
	for (var j = 0; j < owned.length; j++) {
		try {
			owned[j].close();
		} catch(e) {
			if (firstError === null) {
				firstError = e;
			}
		}
	}
	if (firstError !== null) {
		throw firstError;
	}
};

routes['/webpage/EvaluateJavaScript'] = function(msg) {
	return {returnValue: ref(msg.ref).evaluateJavaScript(msg.script)};
};

routes['/webpage/SwitchToFrameName'] = function(msg) {
	ref(msg.ref).switchToFrame(msg.name);
};

routes['/webpage/SwitchToFramePosition'] = function(msg) {
	ref(msg.ref).switchToFrame(msg.position);
};

// Navigation answers asynchronously once the page has loaded.
function handleWebpageOpen(request, response) {
	var msg = parse(request);
	ref(msg.ref).open(msg.url, function(status) {
		reply(response, {status: status});
	});
}

/*
 * HTTP API
 */

var server = webserver.create();
server.listen(system.env['PORT'], function(request, response) {
	try {
		if (request.url === '/ping') {
			response.statusCode = 200;
			response.write('ok');
			return response.closeGracefully();
		}
		if (request.url === '/webpage/Open') {
			return handleWebpageOpen(request, response);
		}
		var handler = routes[request.url];
		if (!handler) {
			response.statusCode = 404;
			response.write('not found');
			return response.closeGracefully();
		}
		reply(response, handler(parse(request)));
	} catch(e) {
		response.statusCode = 500;
		response.write(request.url + ': ' + e.message);
		response.closeGracefully();
	}
});
"""

PHANTOMJS_ROUTES: tuple[str, ...] = (
    "/ping",
    "/webpage/Create",
    "/webpage/Open",
    "/webpage/Pages",
    "/webpage/Close",
    "/webpage/EvaluateJavaScript",
    "/webpage/SwitchToFrameName",
    "/webpage/SwitchToFramePosition",
)


def build_phantomjs_shim() -> str:
    """Return the JavaScript dispatch shim run by PhantomJS.

    :returns: Script source.
    """
    return PHANTOMJS_SHIM


def build_python_bootstrap(factory_target: str, sys_path: list[str] | None = None) -> str:
    """Build a Python bootstrap script that serves the dispatch shim.

    :param factory_target: ``module.path:attribute`` of the native page factory.
    :param sys_path: Optional entries prepended to ``sys.path`` before importing.
    :returns: Script source.
    """
    lines: list[str] = ["import sys"]
    for entry in reversed(sys_path or []):
        lines.append(f"sys.path.insert(0, {json.dumps(entry)})")
    lines.append("from phantombridge.server import serve")
    lines.append(f"serve({json.dumps(factory_target)})")
    return "\n".join(lines) + "\n"
