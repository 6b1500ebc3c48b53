import hashlib
import logging

from datetime import datetime, timezone
from sqlalchemy import create_engine, Boolean, Column, DateTime, ForeignKey, JSON, LargeBinary, Integer, String
from sqlalchemy.orm import declarative_base, relationship, scoped_session, sessionmaker

logger = logging.getLogger(__name__)

Base = declarative_base()


class Deployment(Base):
    """Database model for a deployment.
    """

    __tablename__ = 'deployments'
    id = Column(Integer, primary_key=True)
    network = Column(String)
    chain_id = Column(Integer)
    succeeded = Column(Boolean)
    timestamp = Column(DateTime)

    contracts = relationship('Contract', backref='deployment', cascade='all, delete-orphan')

    def __init__(self, network, chain_id, succeeded=False, timestamp=None):
        """Create a new deployment.

        :param network: Network deployed to
        :param chain_id: Chain ID of network
        :param succeeded: Did the deployment succeed
        :param timestamp: Timestamp of deployment start, defaults to now
        """
        self.network = network
        self.chain_id = chain_id
        self.succeeded = succeeded
        self.timestamp = timestamp or datetime.now(timezone.utc)

    def __repr__(self):
        return '<Deployment {0}, {1}, {2}, {3}>'.format(self.network, self.chain_id, self.timestamp,
                                                        'success' if self.succeeded else 'failed')


class Contract(Base):
    """Database model for a deployed contract.
    """

    __tablename__ = 'contracts'
    id = Column(Integer, primary_key=True)
    name = Column(String)
    address = Column(String)
    abi = Column(JSON(none_as_null=True))
    bytecode = Column(LargeBinary)
    args = Column(JSON(none_as_null=True))
    options = Column(JSON(none_as_null=True))

    deployment_id = Column(Integer, ForeignKey('deployments.id'))

    def __init__(self, deployment, name, address, abi, bytecode, args, options):
        """Create a new contract.

        :param deployment: Deployment this contract is associated with
        :param name: Name of the contract
        :param address: Address of the deployed contract
        :param abi: JSON ABI of the deployed contract
        :param bytecode: Bytecode of the deployed contract
        :param args: Constructor arguments the contract was deployed with
        :param options: Transaction options the contract was deployed with
        """
        self.deployment_id = deployment.id
        self.name = name
        self.address = address
        self.abi = abi
        self.bytecode = bytecode
        self.args = args
        self.options = options

    def bytecode_hash(self):
        """Return a SHA-256 hash of the bytecode.

        :return: Hex digest of the SHA-256 hash of the bytecode
        """
        return hashlib.sha256(self.bytecode).hexdigest()

    def __repr__(self):
        return '<Contract {0}, {1}, {2}>'.format(self.name, self.bytecode_hash(), self.address)


def connect(db_uri):
    """Connect to a database to record deployments.

    :param db_uri: Database URI to connect to
    :return: SQLAlchemy session for interacting with this database
    """
    engine = create_engine(db_uri)
    session = scoped_session(sessionmaker(autoflush=False, bind=engine))
    Base.metadata.create_all(bind=engine)

    logger.info('Connected to deployment database')
    return session
