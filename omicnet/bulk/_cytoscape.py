r"""
Drive a running Cytoscape desktop through its REST scripting interface (CyREST).
"""

import logging
import shlex
from pathlib import Path
from typing import Optional, List, Dict, Any, Union

import pandas as pd
import networkx as nx
import requests

from .._settings import settings, add_reference
from ..utils import DEG_COLORS
from ..utils.registry import register_function
from ._network import module_network, _clean_value

logger = logging.getLogger(__name__)


class CytoscapeError(RuntimeError):
    """Cytoscape answered with an error."""


class CytoscapeConnectionError(CytoscapeError):
    """Cytoscape is not running or not reachable."""


@register_function(
    aliases=["Cytoscape", "cytoscape_client", "cyrest", "网络可视化"],
    category="bulk",
    description="Minimal CyREST client: create networks, load node tables, styles, layouts and image export",
    examples=[
        "cy = onet.bulk.CytoscapeClient()",
        "cy.ping()",
        "suid = cy.create_network(G, title='turquoise', collection='WGCNA')",
        "cy.apply_layout('force-directed', suid)",
    ],
    related=["bulk.push_modules_to_cytoscape", "bulk.module_network"]
)
class CytoscapeClient(object):

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        r"""Connect to CyREST.

        Arguments:
            base_url: CyREST root including the version, ``settings.cytoscape_url`` when None.
            timeout: Request timeout in seconds, ``settings.cytoscape_timeout`` when None.
            session: A ``requests.Session`` to reuse.
        """
        self.base_url = (base_url or settings.cytoscape_url).rstrip('/')
        self.timeout = settings.cytoscape_timeout if timeout is None else timeout
        self.session = session or requests.Session()

    def __repr__(self):
        return f"CytoscapeClient(base_url={self.base_url!r})"

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}" if path else self.base_url
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as err:
            raise CytoscapeConnectionError(
                f"Cannot reach Cytoscape at {self.base_url}; is the desktop application running?") from err
        try:
            response.raise_for_status()
        except requests.HTTPError as err:
            raise CytoscapeError(f"{method} {url} failed ({response.status_code}): {response.text[:500]}") from err
        if not response.content:
            return None
        content_type = response.headers.get('Content-Type', '')
        if 'json' in content_type:
            return response.json()
        if content_type.startswith('image/'):
            return response.content
        return response.text

    @staticmethod
    def _suid(network: Union[int, Dict[str, Any]]) -> int:
        if isinstance(network, dict):
            return int(network['networkSUID'])
        return int(network)

    def ping(self) -> Dict[str, Any]:
        r"""Check that Cytoscape answers.

        Returns:
            version: ``{'apiVersion': ..., 'cytoscapeVersion': ...}``.
        """
        info = self._request('GET', 'version')
        logger.info("Connected to Cytoscape %s", (info or {}).get('cytoscapeVersion'))
        return info

    def command(self, cmd: str, **params) -> Any:
        r"""Run a Cytoscape command such as ``"network list"`` or ``"layout force-directed network=current"``.

        Arguments:
            cmd: ``"<namespace> <command> [key=value ...]"``.
            **params: Extra arguments, merged over those in ``cmd``.

        Returns:
            data: The ``data`` part of the reply.
        """
        tokens = shlex.split(cmd)
        if len(tokens) < 2:
            raise ValueError(f"A command needs a namespace and a name: {cmd!r}")
        words, args = [], {}
        for token in tokens:
            if '=' in token:
                key, value = token.split('=', 1)
                args[key] = value
            elif args:
                raise ValueError(f"Positional word after key=value arguments in {cmd!r}")
            else:
                words.append(token)
        args.update({key: str(value) for key, value in params.items()})
        path = f"commands/{requests.utils.quote(words[0])}/{requests.utils.quote(' '.join(words[1:]))}"
        reply = self._request('POST', path, json=args)
        errors = (reply or {}).get('errors') if isinstance(reply, dict) else None
        if errors:
            raise CytoscapeError(f"Command {cmd!r} failed: {errors}")
        return reply.get('data') if isinstance(reply, dict) else reply

    def list_networks(self) -> List[int]:
        return self._request('GET', 'networks') or []

    def delete_all_networks(self) -> None:
        self._request('DELETE', 'networks')

    def create_network(self, G: nx.Graph, title: str = 'omicnet', collection: str = 'omicnet') -> int:
        r"""Send a networkx graph as Cytoscape JSON.

        Returns:
            suid: SUID of the new network.
        """
        payload = nx.cytoscape_data(G)
        payload['data'] = dict(payload['data'], name=title)
        reply = self._request('POST', 'networks', params={'title': title, 'collection': collection},
                              json=_jsonable(payload))
        suid = self._suid(reply)
        print(f"......network '{title}' created in Cytoscape (SUID {suid})")
        return suid

    def load_node_table(self, df: pd.DataFrame, network: Union[int, Dict[str, Any]],
                        key_column: str = 'name', data_key: Optional[str] = None) -> None:
        r"""Add columns to the default node table.

        Arguments:
            df: Table whose index (or ``data_key`` column) holds node names.
            network: Network SUID.
            key_column: Node table column to match on. ('name')
            data_key: Column of ``df`` holding the names; the index when None.
        """
        data = df.copy()
        if data_key is None:
            data_key = data.index.name or 'id'
            data = data.reset_index().rename(columns={data.index.name or 'index': data_key})
        records = [{k: _clean_value(v) for k, v in row.items()} for row in data.to_dict('records')]
        self._request('PUT', f'networks/{self._suid(network)}/tables/defaultnode',
                      json={'key': key_column, 'dataKey': data_key, 'data': records})

    def create_style(self, name: str, defaults: Optional[Dict[str, Any]] = None,
                     mappings: Optional[List[Dict[str, Any]]] = None) -> str:
        r"""Create (or replace) a visual style.

        Arguments:
            name: Style title.
            defaults: ``{visualProperty: value}``, e.g. ``{'NODE_SHAPE': 'ELLIPSE'}``.
            mappings: CyREST mapping objects, see ``discrete_mapping`` / ``continuous_mapping``.
        """
        existing = self._request('GET', 'styles') or []
        if name in existing:
            self._request('DELETE', f'styles/{requests.utils.quote(name)}')
        body = {'title': name,
                'defaults': [{'visualProperty': k, 'value': v} for k, v in (defaults or {}).items()],
                'mappings': list(mappings or [])}
        self._request('POST', 'styles', json=body)
        return name

    def apply_style(self, name: str, network: Union[int, Dict[str, Any]]) -> None:
        self._request('GET', f'apply/styles/{requests.utils.quote(name)}/{self._suid(network)}')

    def apply_layout(self, name: str, network: Union[int, Dict[str, Any]]) -> None:
        self._request('GET', f'apply/layouts/{requests.utils.quote(name)}/{self._suid(network)}')

    def export_image(self, network: Union[int, Dict[str, Any]], path: Union[str, Path],
                     height: int = 1200) -> str:
        r"""Save the first view of a network as PNG.

        Returns:
            path: The written file.
        """
        content = self._request('GET', f'networks/{self._suid(network)}/views/first.png',
                                params={'h': height})
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content if isinstance(content, bytes) else bytes(content or b''))
        return str(path)

    def module_style(self, G: nx.Graph, name: str = 'omicnet-modules',
                     column: str = 'module') -> str:
        r"""Style colouring nodes by module and scaling edges by weight."""
        colors = {}
        for _, data in G.nodes(data=True):
            if column in data and 'color' in data:
                colors[data[column]] = data['color'].upper()
        weights = [d.get('weight', 0.0) for _, _, d in G.edges(data=True)] or [0.0, 1.0]
        mappings = [
            discrete_mapping(column, 'NODE_FILL_COLOR', colors),
            continuous_mapping('weight', 'EDGE_WIDTH', [min(weights), max(weights)], [1.0, 6.0],
                               column_type='Double'),
        ]
        return self.create_style(name, defaults=_BASE_DEFAULTS, mappings=mappings)

    def deg_style(self, name: str = 'omicnet-deg', limit: float = 2.0) -> str:
        r"""Style colouring nodes by log2 fold change (blue-white-red) and labelling them."""
        mappings = [
            continuous_mapping('log2FC', 'NODE_FILL_COLOR', [-limit, 0.0, limit],
                               [DEG_COLORS['down'], '#FFFFFF', DEG_COLORS['up']], column_type='Double'),
        ]
        return self.create_style(name, defaults=_BASE_DEFAULTS, mappings=mappings)


_BASE_DEFAULTS = {
    'NODE_SHAPE': 'ELLIPSE',
    'NODE_SIZE': 30,
    'NODE_BORDER_WIDTH': 1,
    'EDGE_TRANSPARENCY': 120,
    'NODE_LABEL_FONT_SIZE': 10,
}


def discrete_mapping(column: str, visual_property: str, mapping: Dict[Any, Any],
                     column_type: str = 'String') -> Dict[str, Any]:
    return {'mappingType': 'discrete',
            'mappingColumn': column,
            'mappingColumnType': column_type,
            'visualProperty': visual_property,
            'map': [{'key': str(k), 'value': v} for k, v in mapping.items()]}


def continuous_mapping(column: str, visual_property: str, values: list, targets: list,
                       column_type: str = 'Double') -> Dict[str, Any]:
    r"""Continuous mapping through ``(value, target)`` points, flat outside the range."""
    if len(values) != len(targets):
        raise ValueError("values and targets must have the same length")
    points = [{'value': float(v), 'lesser': t, 'equal': t, 'greater': t} for v, t in zip(values, targets)]
    return {'mappingType': 'continuous',
            'mappingColumn': column,
            'mappingColumnType': column_type,
            'visualProperty': visual_property,
            'points': points}


def _jsonable(obj):
    if isinstance(obj, dict):
        return {k: _jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_jsonable(v) for v in obj]
    return _clean_value(obj)


@register_function(
    aliases=["推送到Cytoscape", "push_modules_to_cytoscape", "send_to_cytoscape"],
    category="bulk",
    description="Build module networks and send them to a running Cytoscape with module colours and a layout",
    examples=[
        "onet.bulk.push_modules_to_cytoscape(wgcna, ['turquoise', 'blue'], deg_result=dds.result)",
    ],
    related=["bulk.CytoscapeClient", "bulk.module_network"]
)
def push_modules_to_cytoscape(wgcna, modules: list, client: Optional[CytoscapeClient] = None,
                              threshold: float = 0.1, weight: str = 'TOM',
                              deg_result: Optional[pd.DataFrame] = None,
                              collection: str = 'WGCNA modules', layout: str = 'force-directed',
                              style: str = 'module', image_dir: Optional[str] = None,
                              clear: bool = False) -> Dict[str, int]:
    r"""One network per module in Cytoscape.

    Arguments:
        wgcna: ``pyWGCNA`` object with modules and TOM/adjacency.
        modules: Module colours (or labels).
        client: ``CytoscapeClient``; a default one when None.
        threshold: Minimum edge weight. (0.1)
        weight: ``'TOM'`` or ``'adjacency'``. ('TOM')
        deg_result: DEG table, adds fold changes to the node table.
        collection: Cytoscape collection name.
        layout: Layout algorithm. ('force-directed')
        style: ``'module'`` or ``'deg'`` colouring. ('module')
        image_dir: Export a PNG per module there when given.
        clear: Delete all networks first. (False)

    Returns:
        suids: ``{module: network SUID}``.
    """
    client = client or CytoscapeClient()
    client.ping()
    if clear:
        client.delete_all_networks()
    if style not in ('module', 'deg'):
        raise ValueError("style must be 'module' or 'deg'")
    suids = {}
    for module in modules:
        G = module_network(wgcna, [module], threshold=threshold, weight=weight, deg_result=deg_result)
        if G.number_of_nodes() == 0:
            logger.warning("Module %s has no edge above %s; skipped", module, threshold)
            continue
        suid = client.create_network(G, title=f'{module} module', collection=collection)
        if style == 'deg' and deg_result is not None:
            style_name = client.deg_style()
        else:
            style_name = client.module_style(G)
        client.apply_style(style_name, suid)
        client.apply_layout(layout, suid)
        if image_dir is not None:
            client.export_image(suid, Path(image_dir) / f'{module}_module.png')
        suids[module] = suid
    if suids:
        add_reference(wgcna.uns, 'Cytoscape', 'network visualisation in Cytoscape through CyREST')
    return suids
