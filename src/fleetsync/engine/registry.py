"""
Registry of table sync settings and their adapters.
"""

import logging
from typing import Dict, Iterable, List, Optional

from ..connectors.base import TableAdapter
from ..exceptions import ConfigurationError
from ..models.config import ConflictPriority, FieldCodec, FieldMapping, SyncDirection, TableSyncSpec

logger = logging.getLogger(__name__)


def _mapping(entries: Dict[str, str], codecs: Optional[Dict[str, FieldCodec]] = None) -> List[FieldMapping]:
    codecs = codecs or {}
    return [
        FieldMapping(local_path=local_path, remote_field=remote_field, codec=codecs.get(local_path))
        for local_path, remote_field in entries.items()
    ]


REPORT_MAPPING = {
    "driver.last_name": "NOM DU CHAUFFEUR",
    "order.order_number": "NUMERO DE COMMANDE",
    "comment": "MESSAGE",
    "report_date": "DATE / HEURE",
    "order.store.name": "MAGASIN",
}


def default_table_specs() -> List[TableSyncSpec]:
    """The table catalogue of the operations backend."""
    return [
        TableSyncSpec(
            table_name="orders",
            remote_collection_id="Commandes",
            direction=SyncDirection.PUSH_ONLY,
            critical=True,
            cadence="*/2 * * * *",
            field_mapping=_mapping({
                "order_number": "NUMERO DE COMMANDE",
                "order_date": "DATE DE LA COMMANDE",
                "delivery_date": "DATE DE LA LIVRAISON",
                "order_status": "STATUT DE LA COMMANDE",
                "delivery_status": "STATUT DE LA LIVRAISON (ENCART MYTRUCK)",
                "price_excl_tax": "TARIF HT",
                "delivery_slot": "CRENEAU DE LIVRAISON",
                "vehicle_category": "CATEGORIE DE VEHICULE",
                "crew_option": "OPTION EQUIPIER DE MANUTENTION",
                "transport_reserve": "RESERVE TRANSPORT",
                "seller_first_name": "PRENOM DU VENDEUR/INTERLOCUTEUR",
                "remarks": "AUTRES REMARQUES",
                "client.last_name": "NOM DU CLIENT",
                "client.first_name": "PRENOM DU CLIENT",
                "client.phone": "TELEPHONE DU CLIENT",
                "client.secondary_phone": "TELEPHONE DU CLIENT 2",
                "client.address_line1": "ADRESSE DE LIVRAISON",
                "client.address_type": "TYPE D'ADRESSE",
                "client.building": "BÂTIMENT",
                "client.floor": "ETAGE",
                "client.intercom": "INTERPHONE/CODE",
                "client.elevator": "ASCENSEUR",
                "store.name": "NOM DU MAGASIN",
                "articles.count": "NOMBRE TOTAL D'ARTICLES",
                "articles.details": "DETAILS SUR LES ARTICLES",
            }, codecs={
                "order_date": FieldCodec.DATETIME,
                "delivery_date": FieldCodec.DATETIME,
                "price_excl_tax": FieldCodec.NUMBER,
                "transport_reserve": FieldCodec.BOOLEAN,
                "client.elevator": FieldCodec.BOOLEAN,
            }),
        ),
        TableSyncSpec(
            table_name="clients",
            remote_collection_id="Clients",
            direction=SyncDirection.PUSH_ONLY,
            critical=True,
            cadence="*/5 * * * *",
            field_mapping=_mapping({
                "last_name": "NOM DU CLIENT",
                "first_name": "PRENOM DU CLIENT",
                "phone": "TELEPHONE DU CLIENT",
                "secondary_phone": "TELEPHONE DU CLIENT 2",
                "address_line1": "ADRESSE DE LIVRAISON",
                "building": "BÂTIMENT",
                "floor": "ETAGE",
                "intercom": "INTERPHONE/CODE",
            }),
        ),
        TableSyncSpec(
            table_name="drivers",
            remote_collection_id="Personnel My Truck",
            direction=SyncDirection.BIDIRECTIONAL,
            conflict_priority=ConflictPriority.LOCAL_WINS,
            cadence="*/10 * * * *",
            field_mapping=_mapping({
                "last_name": "NOM",
                "phone": "TELEPHONE",
                "email": "E-MAIL",
                "role": "RÔLE",
                "status": "STATUT",
                "notes": "NOTES",
                "latitude": "LATITUDE",
                "longitude": "LONGITUDE",
            }, codecs={"latitude": FieldCodec.NUMBER, "longitude": FieldCodec.NUMBER}),
        ),
        TableSyncSpec(
            table_name="stores",
            remote_collection_id="Magasins",
            direction=SyncDirection.BIDIRECTIONAL,
            conflict_priority=ConflictPriority.LOCAL_WINS,
            cadence="*/15 * * * *",
            field_mapping=_mapping({
                "name": "NOM DU MAGASIN",
                "address": "ADRESSE DU MAGASIN",
                "phone": "TÉLÉPHONE",
                "email": "E-MAIL",
            }),
        ),
        TableSyncSpec(
            table_name="users",
            remote_collection_id="Users",
            direction=SyncDirection.PUSH_ONLY,
            cadence="*/15 * * * *",
            field_mapping=_mapping({
                "name": "NOM",
                "email": "E-MAIL",
                "role": "RÔLE",
                "store.name": "ENTREPRISE/MAGASIN",
            }),
        ),
        TableSyncSpec(
            table_name="pickup_reports",
            remote_collection_id="Rapports à l'enlèvement",
            direction=SyncDirection.PUSH_ONLY,
            cadence="*/5 * * * *",
            field_mapping=_mapping(REPORT_MAPPING, codecs={"report_date": FieldCodec.DATETIME}),
        ),
        TableSyncSpec(
            table_name="delivery_reports",
            remote_collection_id="Rapports à la livraison",
            direction=SyncDirection.PUSH_ONLY,
            cadence="*/5 * * * *",
            field_mapping=_mapping(REPORT_MAPPING, codecs={"report_date": FieldCodec.DATETIME}),
        ),
        TableSyncSpec(
            table_name="tracking_events",
            remote_collection_id="Historique",
            direction=SyncDirection.READ_ONLY_MIRROR,
            cadence="*/1 * * * *",
            field_mapping=_mapping({
                "event_type": "HISTORIQUE DES LIVRAISONS",
                "timestamp": "DATE / HEURE",
                "order.order_number": "NUMERO DE COMMANDE",
                "order.delivery_status": "STATUT DE LA LIVRAISON (ENCART MYTRUCK)",
            }, codecs={"timestamp": FieldCodec.DATETIME}),
        ),
        TableSyncSpec(
            table_name="invoices",
            remote_collection_id="Factures",
            direction=SyncDirection.PUSH_ONLY,
            critical=True,
            cadence="*/10 * * * *",
            field_mapping=_mapping({
                "invoice_number": "NUMÉRO DE FACTURE",
                "invoice_date": "DATE DE FACTURATION",
                "status": "STATUT",
                "store.name": "MAGASIN",
                "order.order_number": "COMMANDE",
            }, codecs={"invoice_date": FieldCodec.DATETIME}),
        ),
        TableSyncSpec(
            table_name="quotes",
            remote_collection_id="Devis",
            direction=SyncDirection.PUSH_ONLY,
            cadence="*/10 * * * *",
            field_mapping=_mapping({
                "quote_number": "NUMÉRO DE DEVIS",
                "quote_date": "DATE DE DEVIS",
                "status": "STATUT",
                "store.name": "MAGASIN",
                "order.order_number": "COMMANDE",
            }, codecs={"quote_date": FieldCodec.DATETIME}),
        ),
    ]


class TableSyncRegistry:
    """
    Holds the sync settings of every configured table together with its adapter.

    Construction fails when a configured table has no adapter, so a broken
    deployment is caught at startup rather than during a sweep.
    """

    def __init__(self, specs: Iterable[TableSyncSpec], adapters: Dict[str, TableAdapter],
                 cadence_overrides: Optional[Dict[str, str]] = None):
        """
        Initialize the registry.

        Args:
            specs: Table settings; table names must be unique
            adapters: Adapter per table name
            cadence_overrides: Cron expression per table name, replacing the default cadence

        Raises:
            ConfigurationError: On duplicate tables, missing adapters or invalid overrides
        """
        self._specs: Dict[str, TableSyncSpec] = {}
        self._adapters = dict(adapters)

        for spec in specs:
            if spec.table_name in self._specs:
                raise ConfigurationError(f"Table {spec.table_name} is configured twice")
            if spec.table_name not in self._adapters:
                raise ConfigurationError(f"No adapter registered for table {spec.table_name}")
            self._specs[spec.table_name] = spec

        for table_name, cadence in (cadence_overrides or {}).items():
            spec = self._specs.get(table_name)
            if spec is None:
                logger.warning(f"Ignoring cadence override for unknown table {table_name}")
                continue
            try:
                self._specs[table_name] = TableSyncSpec(**{**spec.model_dump(), "cadence": cadence})
            except ValueError as e:
                raise ConfigurationError(f"Invalid cadence override for {table_name}: {e}") from e
            logger.info(f"Cadence for {table_name} overridden to '{cadence}'")

        logger.info(f"Registered {len(self._specs)} tables for sync")

    def get_spec(self, table_name: str) -> Optional[TableSyncSpec]:
        return self._specs.get(table_name)

    def get_adapter(self, table_name: str) -> Optional[TableAdapter]:
        if table_name not in self._specs:
            return None
        return self._adapters[table_name]

    def table_names(self) -> List[str]:
        return list(self._specs)

    def specs(self) -> List[TableSyncSpec]:
        return list(self._specs.values())

    def critical_tables(self) -> List[TableSyncSpec]:
        """Critical tables that push on the high-frequency sweep."""
        return [
            spec for spec in self._specs.values()
            if spec.critical and spec.direction in (SyncDirection.PUSH_ONLY, SyncDirection.BIDIRECTIONAL)
        ]

    def bidirectional_tables(self) -> List[TableSyncSpec]:
        return [spec for spec in self._specs.values() if spec.direction == SyncDirection.BIDIRECTIONAL]

    def pull_tables(self) -> List[TableSyncSpec]:
        """Tables whose remote changes are pulled back: bidirectional and pull-only."""
        return [spec for spec in self._specs.values() if spec.direction.can_pull]

    def __contains__(self, table_name: str) -> bool:
        return table_name in self._specs

    def __len__(self) -> int:
        return len(self._specs)


def create_default_registry(adapters: Dict[str, TableAdapter],
                            cadence_overrides: Optional[Dict[str, str]] = None) -> TableSyncRegistry:
    return TableSyncRegistry(default_table_specs(), adapters, cadence_overrides=cadence_overrides)
